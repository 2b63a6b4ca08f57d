"""研报缓存服务测试"""

from datetime import date

import pytest

from quote_service.layers.cache import ANALYSIS_NS
from quote_service.models.report import AnalysisReport, StrategyView
from quote_service.models.stock import StockRecord
from quote_service.services import report_service
from quote_service.services.report_service import REPORT_SCHEMA_VERSION, ReportService

from conftest import make_candles


class FakeGenerator:
    def __init__(self):
        self.calls = []

    async def generate(self, record: StockRecord, language: str) -> AnalysisReport:
        self.calls.append((record.code, language))
        return AnalysisReport(
            stock_code=record.code,
            timestamp="2024-06-14T00:00:00+00:00",
            strategy=StrategyView(recommendation="BUY", summary=f"{language} summary"),
        )


@pytest.fixture
def record() -> StockRecord:
    return StockRecord(code="sh.600519", candles=make_candles([10.0, 11.0]), last_update="2024-06-14")


class TestReportService:
    def test_cache_key(self):
        key = ReportService.cache_key("sh.600519", "en", day=date(2024, 6, 14))
        assert key.namespace == ANALYSIS_NS
        assert str(key) == f"analysis:{REPORT_SCHEMA_VERSION}:sh.600519_en_2024-06-14"

    @pytest.mark.asyncio
    async def test_generated_then_cached(self, memory_cache, record):
        gen = FakeGenerator()
        svc = ReportService(gen, cache=memory_cache)
        first = await svc.get_report(record, "zh")
        second = await svc.get_report(record, "zh")
        assert gen.calls == [("sh.600519", "zh")]
        assert second == first
        assert second.strategy.recommendation == "BUY"

    @pytest.mark.asyncio
    async def test_language_in_key(self, memory_cache, record):
        gen = FakeGenerator()
        svc = ReportService(gen, cache=memory_cache)
        await svc.get_report(record, "zh")
        await svc.get_report(record, "en")
        assert len(gen.calls) == 2

    @pytest.mark.asyncio
    async def test_force_refresh(self, memory_cache, record):
        gen = FakeGenerator()
        svc = ReportService(gen, cache=memory_cache)
        await svc.get_report(record)
        await svc.get_report(record, force_refresh=True)
        assert len(gen.calls) == 2

    @pytest.mark.asyncio
    async def test_ttl_applied(self, memory_cache, memory_backend, record):
        svc = ReportService(FakeGenerator(), cache=memory_cache)
        await svc.get_report(record)
        (entry,) = memory_backend.store.values()
        assert entry.expires_at - entry.created_at == pytest.approx(86400)


class TestConfigure:
    def test_configure(self, monkeypatch):
        monkeypatch.setattr(report_service, "_report_service", None)
        assert report_service.get_report_service() is None
        svc = report_service.configure_report_service(FakeGenerator())
        assert report_service.get_report_service() is svc
