"""
股票数据服务（获取控制器）
缓存查询 → 故障转移获取 → 指标增强 → 财务补全 → 写回缓存
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError

from quote_service.config import settings
from quote_service.exceptions import AllSourcesExhausted, MarketDataUnavailable
from quote_service.layers.acquisition import AcquisitionLayer, get_acquisition_layer
from quote_service.layers.analysis import AnalysisLayer, get_analysis_layer
from quote_service.layers.cache import MARKET_NS, CacheLayer, get_cache_layer
from quote_service.layers.reconciliation import reconcile_financials
from quote_service.models.cache import CacheKey
from quote_service.models.stock import Candle, FinancialSnapshot, StockRecord

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    """统一代码格式：去空白，交易所前缀小写（SH.600519 → sh.600519）"""
    c = code.strip()
    if len(c) > 3 and c[2] == "." and c[:2].isalpha():
        return c[:2].lower() + c[2:]
    return c


class StockService:
    """股票数据业务服务"""

    def __init__(
        self,
        acquisition: AcquisitionLayer = None,
        cache: CacheLayer = None,
        analysis: AnalysisLayer = None,
    ):
        self._acq = acquisition or get_acquisition_layer()
        self._cache = cache or get_cache_layer()
        self._analysis = analysis or get_analysis_layer()
        # 进行中的请求，同一代码的并发请求合并为一次获取
        self._inflight: Dict[str, asyncio.Task] = {}

    @staticmethod
    def cache_key(code: str) -> CacheKey:
        return CacheKey(namespace=MARKET_NS, entity=code, version=settings.CACHE_SCHEMA_VERSION)

    # ── 完整记录 ──────────────────────────────────────────

    async def get_stock(
        self, code: str, name: str = "", force_refresh: bool = False
    ) -> StockRecord:
        """
        获取增强后的股票记录

        Args:
            code: 股票代码，如 sh.600519 / 000858
            name: 展示名称；缓存或合并请求返回的记录也会换成该名称
            force_refresh: 跳过缓存读取，强制重新获取

        Raises:
            MarketDataUnavailable: 所有数据源均失败（未配置合成兜底时）
        """
        code = normalize_code(code)
        if not force_refresh:
            cached = await self._read_cache(code)
            if cached is not None:
                return self._with_name(cached, name)

        task = self._inflight.get(code)
        if task is None:
            task = asyncio.ensure_future(self._load(code, name))
            self._inflight[code] = task
            task.add_done_callback(lambda t, c=code: self._forget(c, t))
        else:
            logger.debug(f"{code} 已有进行中的请求，合并等待")
        return self._with_name(await asyncio.shield(task), name)

    @staticmethod
    def _with_name(record: StockRecord, name: str) -> StockRecord:
        if name and record.name != name:
            return record.model_copy(update={"name": name})
        return record

    def _forget(self, code: str, task: asyncio.Task) -> None:
        if self._inflight.get(code) is task:
            del self._inflight[code]

    async def _read_cache(self, code: str) -> Optional[StockRecord]:
        payload = await self._cache.get(MARKET_NS, self.cache_key(code))
        if payload is None:
            return None
        try:
            return StockRecord.model_validate(payload)
        except ValidationError as exc:
            logger.warning(f"{code} 缓存内容无法解析，按未命中处理: {exc}")
            return None

    async def _load(self, code: str, name: str) -> StockRecord:
        try:
            result = await self._acq.acquire(code)
        except AllSourcesExhausted as exc:
            raise MarketDataUnavailable(code, exc) from exc

        record = StockRecord(
            code=code,
            name=name,
            candles=self._analysis.enrich(result.candles),
            last_update=datetime.now(tz=timezone.utc).isoformat(),
            financials=reconcile_financials(result.financials),
            source=result.source,
            synthetic=result.synthetic,
        )

        # 合成数据不写缓存，下一次请求重新尝试真实数据源
        if not record.synthetic:
            await self._cache.set(
                MARKET_NS,
                self.cache_key(code),
                record.model_dump(mode="json"),
                ttl=settings.MARKET_CACHE_TTL,
            )
        return record

    # ── 快速查询 ──────────────────────────────────────────

    async def get_candles(
        self, code: str, limit: Optional[int] = None, force_refresh: bool = False
    ) -> List[Candle]:
        """返回增强后的 K 线，limit 指定时只取最近 limit 根"""
        record = await self.get_stock(code, force_refresh=force_refresh)
        if limit:
            return record.candles[-limit:]
        return list(record.candles)

    async def get_financials(
        self, code: str, force_refresh: bool = False
    ) -> Optional[FinancialSnapshot]:
        """仅返回补全后的财务快照"""
        record = await self.get_stock(code, force_refresh=force_refresh)
        return record.financials

    async def invalidate(self, code: str) -> None:
        await self._cache.delete(MARKET_NS, self.cache_key(normalize_code(code)))


# ── 模块级别单例 ──────────────────────────────────────────
_stock_service: Optional[StockService] = None


def get_stock_service() -> StockService:
    global _stock_service
    if _stock_service is None:
        _stock_service = StockService()
    return _stock_service
