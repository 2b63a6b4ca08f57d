"""
研报缓存服务
研报由外部文本生成服务产出，本服务只定义接口并按 (代码, 语言, 日期) 缓存 24 小时
"""

import logging
from datetime import date
from typing import Optional, Protocol

from pydantic import ValidationError

from quote_service.config import settings
from quote_service.layers.cache import ANALYSIS_NS, CacheLayer, get_cache_layer
from quote_service.models.cache import CacheKey
from quote_service.models.report import AnalysisReport
from quote_service.models.stock import StockRecord

logger = logging.getLogger(__name__)

REPORT_SCHEMA_VERSION = "v5"


class ReportGenerator(Protocol):
    """外部研报生成服务接口"""

    async def generate(self, record: StockRecord, language: str) -> AnalysisReport:
        ...


class ReportService:
    """研报获取：缓存优先，未命中时调用外部生成服务"""

    def __init__(self, generator: ReportGenerator, cache: CacheLayer = None):
        self._generator = generator
        self._cache = cache or get_cache_layer()

    @staticmethod
    def cache_key(code: str, language: str, day: date = None) -> CacheKey:
        day = day or date.today()
        return CacheKey(
            namespace=ANALYSIS_NS,
            entity=f"{code}_{language}_{day.isoformat()}",
            version=REPORT_SCHEMA_VERSION,
        )

    async def get_report(
        self, record: StockRecord, language: str = "zh", force_refresh: bool = False
    ) -> AnalysisReport:
        key = self.cache_key(record.code, language)
        if not force_refresh:
            cached = await self._cache.get(ANALYSIS_NS, key)
            if cached is not None:
                try:
                    return AnalysisReport.model_validate(cached)
                except ValidationError as exc:
                    logger.warning(f"研报缓存无法解析，重新生成: {exc}")

        report = await self._generator.generate(record, language)
        await self._cache.set(
            ANALYSIS_NS, key, report.model_dump(mode="json"), ttl=settings.REPORT_CACHE_TTL
        )
        return report


# ── 模块级别单例 ──────────────────────────────────────────
_report_service: Optional[ReportService] = None


def configure_report_service(generator: ReportGenerator) -> ReportService:
    """注册外部研报生成服务"""
    global _report_service
    _report_service = ReportService(generator)
    return _report_service


def get_report_service() -> Optional[ReportService]:
    return _report_service
