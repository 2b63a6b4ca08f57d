"""
备用数据源 – 腾讯行情
单个请求同时返回前复权日 K 与报价数组（粗粒度估值）；
报价数组缺失时再请求 qt.gtimg.cn 文本快照补齐估值。
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from quote_service.config import settings
from quote_service.exceptions import SourceError, SourceMalformed
from quote_service.layers.sources.base import (
    SourceAdapter,
    SourceResult,
    to_float,
    to_positive,
    to_tencent_symbol,
)
from quote_service.layers.transport import JsonpTransport, make_callback_name
from quote_service.models.stock import Candle, FinancialSnapshot

logger = logging.getLogger(__name__)

_KLINE_URL = (
    "https://web.ifzq.gtimg.cn/appstock/app/fqkline/get"
    "?param={symbol},day,,,{limit},qfq&cb={cb}"
)
# 文本快照：v_sh600519="1~贵州茅台~600519~...";
_SNAPSHOT_URL = "https://qt.gtimg.cn/q={symbol}"

# 报价数组下标：38 换手率 39 市盈率 44 流通市值(亿) 45 总市值(亿) 46 市净率
_QT_TURNOVER, _QT_PE, _QT_FLOAT_CAP, _QT_MARKET_CAP, _QT_PB = 38, 39, 44, 45, 46
_YI = 100_000_000


def parse_day_rows(payload: Any, symbol: str) -> Tuple[List[Dict[str, Any]], List[Any]]:
    """返回 (K 线记录, 报价数组)，结构不完整时抛出 SourceMalformed"""
    data = payload.get("data") if isinstance(payload, dict) else None
    node = data.get(symbol) if isinstance(data, dict) else None
    if not isinstance(node, dict):
        raise SourceMalformed(f"腾讯行情缺少 {symbol} 数据节点", source=TencentAdapter.name)

    rows = node.get("qfqday") or node.get("day")
    if not isinstance(rows, list):
        raise SourceMalformed("腾讯行情缺少日 K 数据", source=TencentAdapter.name)

    records = []
    for item in rows:
        if not isinstance(item, list) or len(item) < 6:
            continue
        open_, close = to_float(item[1]), to_float(item[2])
        pct_chg = (close - open_) / open_ * 100 if open_ and close is not None else None
        records.append({
            "date": item[0],
            "open": open_,
            "close": close,
            "high": to_float(item[3]),
            "low": to_float(item[4]),
            "volume": to_float(item[5]) or 0.0,
            "amount": 0.0,
            "pct_chg": pct_chg,
        })

    qt_node = node.get("qt")
    qt = qt_node.get(symbol) if isinstance(qt_node, dict) else None
    return records, qt if isinstance(qt, list) else []


def parse_quote(qt: List[Any]) -> FinancialSnapshot:
    """从报价数组中提取估值元组，长度不足时返回空快照"""
    if len(qt) <= _QT_PB:
        return FinancialSnapshot()
    market_cap = to_positive(qt[_QT_MARKET_CAP])
    float_cap = to_positive(qt[_QT_FLOAT_CAP])
    return FinancialSnapshot(
        pe_ttm=to_float(qt[_QT_PE]) or None,
        pb=to_float(qt[_QT_PB]) or None,
        market_cap=market_cap * _YI if market_cap else None,
        circulating_cap=float_cap * _YI if float_cap else None,
        turnover_rate=to_float(qt[_QT_TURNOVER]) or None,
    )


def parse_text_snapshot(text: str, symbol: str) -> List[str]:
    """从 v_<symbol>="a~b~c"; 形式的文本中取出以 ~ 分隔的字段"""
    match = re.search(rf'v_{re.escape(symbol)}="([^"]*)"', text or "")
    if not match:
        raise SourceMalformed(f"腾讯快照缺少 {symbol}", source=TencentAdapter.name)
    return match.group(1).split("~")


class TencentAdapter(SourceAdapter):
    """腾讯行情数据源（备）"""

    name = "tencent"

    def __init__(self, transport: JsonpTransport = None, limit: int = None):
        self.transport = transport or JsonpTransport()
        self.limit = limit or settings.KLINE_LIMIT

    async def _fetch_payload(self, code: str) -> Tuple[List[Dict[str, Any]], List[Any]]:
        symbol = to_tencent_symbol(code)
        cb = make_callback_name("cb_qq", code)
        url = _KLINE_URL.format(symbol=symbol, limit=self.limit, cb=cb)
        payload = await self.transport.fetch(url, cb)
        return parse_day_rows(payload, symbol)

    async def fetch_candles(self, code: str) -> List[Candle]:
        records, _ = await self._fetch_payload(code)
        return self.build_candles(records)

    async def fetch_financials(self, code: str) -> FinancialSnapshot:
        """文本快照估值，失败时返回空快照"""
        symbol = to_tencent_symbol(code)
        try:
            text = await self.transport.fetch_text(_SNAPSHOT_URL.format(symbol=symbol))
            return parse_quote(parse_text_snapshot(text, symbol))
        except SourceError as exc:
            logger.warning(f"腾讯估值获取失败（非致命）: {exc}")
            return FinancialSnapshot()

    async def fetch(self, code: str) -> SourceResult:
        records, qt = await self._fetch_payload(code)
        candles = self.build_candles(records)
        financials = parse_quote(qt)
        if financials.is_empty():
            financials = await self.fetch_financials(code)
        return SourceResult(candles=candles, financials=financials, source=self.name)
