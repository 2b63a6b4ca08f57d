"""
主数据源 – 东方财富

一次获取并发发出三个请求：
  1. 历史日 K（必需，失败则整个数据源失败）
  2. 实时估值快照（尽力而为）
  3. 主要财务指标报表（尽力而为，取最近 8 期）
"""

import asyncio
import logging
from contextlib import suppress
from datetime import date
from typing import Any, Dict, List, Optional

from quote_service.config import settings
from quote_service.exceptions import SourceError, SourceMalformed
from quote_service.layers.reconciliation import merge_financials
from quote_service.layers.sources.base import (
    SourceAdapter,
    SourceResult,
    clean_code,
    to_eastmoney_secid,
    to_float,
)
from quote_service.layers.transport import JsonpTransport, make_callback_name
from quote_service.models.stock import Candle, FinancialSnapshot

logger = logging.getLogger(__name__)

# f51 日期 f52 开 f53 收 f54 高 f55 低 f56 量 f57 额 f58 振幅 f59 涨跌幅 f60 涨跌额 f61 换手率
_KLINE_FIELDS = "f51,f52,f53,f54,f55,f56,f57,f58,f59,f60,f61"
# 历史日 K 先走 push2his，失败或为空时换 push2 镜像
_KLINE_HOSTS = ("push2his.eastmoney.com", "push2.eastmoney.com")
_KLINE_URL = (
    "https://{host}/api/qt/stock/kline/get"
    "?fields1=f1,f2,f3,f4,f5,f6&fields2={fields}&klt=101&fqt=1"
    "&secid={secid}&beg=0&end=20500101&lmt={limit}&cb={cb}"
)
# f57 代码 f58 名称 f116 总市值 f117 流通市值 f162 市盈率TTM f167 市净率 f168 换手率 f173 ROE
_SNAPSHOT_URL = (
    "https://push2.eastmoney.com/api/qt/stock/get"
    "?invt=2&fltt=2&fields=f43,f57,f58,f116,f117,f162,f167,f168,f173"
    "&secid={secid}&cb={cb}"
)
_REPORT_URL = (
    "https://datacenter-web.eastmoney.com/api/data/v1/get"
    "?reportName=RPT_LICO_FN_KEY_INDICATOR&columns=ALL"
    "&filter=(SECURITY_CODE%3D%22{code}%22)"
    "&pageNumber=1&pageSize=8&sortTypes=-1&sortColumns=REPORT_DATE"
    "&source=WEB&client=WEB&callback={cb}"
)


def parse_kline_rows(payload: Any) -> List[Dict[str, Any]]:
    """解析 data.klines 中以逗号分隔的 K 线字符串"""
    data = payload.get("data") if isinstance(payload, dict) else None
    klines = data.get("klines") if isinstance(data, dict) else None
    if not isinstance(klines, list):
        raise SourceMalformed("东方财富 K 线数据结构不完整", source=EastMoneyAdapter.name)

    records = []
    for line in klines:
        parts = str(line).split(",")
        if len(parts) < 7:
            continue
        records.append({
            "date": parts[0],
            "open": to_float(parts[1]),
            "close": to_float(parts[2]),
            "high": to_float(parts[3]),
            "low": to_float(parts[4]),
            "volume": to_float(parts[5]) or 0.0,
            "amount": to_float(parts[6]) or 0.0,
            "pct_chg": to_float(parts[8]) if len(parts) > 8 else None,
            "turnover": to_float(parts[10]) if len(parts) > 10 else None,
        })
    return records


def parse_snapshot(payload: Any) -> FinancialSnapshot:
    """解析实时估值快照，'-' 表示缺失"""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return FinancialSnapshot()
    return FinancialSnapshot(
        pe_ttm=to_float(data.get("f162")),
        pb=to_float(data.get("f167")),
        market_cap=to_float(data.get("f116")),
        circulating_cap=to_float(data.get("f117")),
        turnover_rate=to_float(data.get("f168")),
        roe=to_float(data.get("f173")),
    )


def select_report(rows: List[Dict[str, Any]], today: date = None) -> Optional[Dict[str, Any]]:
    """选取日期不晚于今天、且包含营收或净利润的最近一期报告"""
    today_str = (today or date.today()).isoformat()
    for row in rows:
        if not isinstance(row, dict):
            continue
        report_date = str(row.get("REPORT_DATE") or "2099-01-01").split(" ")[0]
        if report_date > today_str:
            continue
        if to_float(row.get("TOTAL_OPERATE_INCOME")) or to_float(row.get("PARENT_NET_PROFIT")):
            return row
    return None


def derive_report_financials(row: Dict[str, Any]) -> FinancialSnapshot:
    """
    从原始报表数值推导杜邦分析相关指标

    原始值为 0 或缺失时回退到数据商直接提供的比率。
    """
    revenue = to_float(row.get("TOTAL_OPERATE_INCOME")) or 0.0
    net_profit = to_float(row.get("PARENT_NET_PROFIT")) or 0.0
    total_assets = to_float(row.get("TOTAL_ASSETS")) or 0.0
    total_liabilities = to_float(row.get("TOTAL_LIABILITIES")) or 0.0
    total_equity = total_assets - total_liabilities

    if revenue > 0:
        net_margin = net_profit / revenue * 100
    else:
        net_margin = to_float(row.get("NET_PROFIT_MARGIN"))

    asset_turnover = revenue / total_assets if total_assets > 0 else None

    if total_assets > 0:
        debt_ratio = total_liabilities / total_assets * 100
    else:
        debt_ratio = to_float(row.get("DEBT_ASSET_RATIO"))

    equity_multiplier = total_assets / total_equity if total_equity > 0 else None

    roe = to_float(row.get("ROE_WEIGHTED"))
    if not roe and total_equity > 0:
        roe = net_profit / total_equity * 100
    # 为 0 的 ROE 视为缺失，交给估值快照的 f173 补齐
    if not roe:
        roe = None

    report_date = row.get("REPORT_DATE")
    return FinancialSnapshot(
        roe=roe,
        net_margin=net_margin,
        gross_margin=to_float(row.get("GROSS_PROFIT_MARGIN")),
        debt_ratio=debt_ratio,
        asset_turnover=asset_turnover,
        equity_multiplier=equity_multiplier,
        report_date=str(report_date).split(" ")[0] if report_date else None,
    )


class EastMoneyAdapter(SourceAdapter):
    """东方财富数据源（主）"""

    name = "eastmoney"

    def __init__(self, transport: JsonpTransport = None, limit: int = None):
        self.transport = transport or JsonpTransport()
        self.limit = limit or settings.KLINE_LIMIT

    async def fetch_candles(self, code: str) -> List[Candle]:
        """依次尝试各镜像，每次使用新的回调名；全部失败时抛出最后一个错误"""
        last_error: Optional[SourceError] = None
        for host in _KLINE_HOSTS:
            cb = make_callback_name("cb_em_k", code)
            url = _KLINE_URL.format(
                host=host,
                fields=_KLINE_FIELDS,
                secid=to_eastmoney_secid(code),
                limit=self.limit,
                cb=cb,
            )
            try:
                payload = await self.transport.fetch(url, cb)
                return self.build_candles(parse_kline_rows(payload))
            except SourceError as exc:
                logger.warning(f"东方财富 K 线镜像 {host} 失败: {exc}")
                last_error = exc
        raise last_error

    async def fetch_snapshot(self, code: str) -> FinancialSnapshot:
        cb = make_callback_name("cb_em_snap", code)
        url = _SNAPSHOT_URL.format(secid=to_eastmoney_secid(code), cb=cb)
        try:
            return parse_snapshot(await self.transport.fetch(url, cb))
        except SourceError as exc:
            logger.warning(f"东方财富估值快照获取失败（非致命）: {exc}")
            return FinancialSnapshot()

    async def fetch_report(self, code: str) -> FinancialSnapshot:
        cb = make_callback_name("cb_em_fin", code)
        url = _REPORT_URL.format(code=clean_code(code), cb=cb)
        try:
            payload = await self.transport.fetch(url, cb)
        except SourceError as exc:
            logger.warning(f"东方财富财务报表获取失败（非致命）: {exc}")
            return FinancialSnapshot()

        result = payload.get("result") if isinstance(payload, dict) else None
        rows = result.get("data") if isinstance(result, dict) else None
        row = select_report(rows) if isinstance(rows, list) else None
        if row is None:
            logger.info(f"{code} 没有可用的财务报表")
            return FinancialSnapshot()
        return derive_report_financials(row)

    async def fetch_financials(self, code: str) -> FinancialSnapshot:
        snapshot, report = await asyncio.gather(
            self.fetch_snapshot(code), self.fetch_report(code)
        )
        # 报表 ROE（加权）优先于快照 ROE
        return merge_financials(report, snapshot)

    async def fetch(self, code: str) -> SourceResult:
        financial_task = asyncio.create_task(self.fetch_financials(code))
        try:
            candles = await self.fetch_candles(code)
        except BaseException:
            financial_task.cancel()
            with suppress(asyncio.CancelledError):
                await financial_task
            raise
        financials = await financial_task
        return SourceResult(candles=candles, financials=financials, source=self.name)
