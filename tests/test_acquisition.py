"""数据获取层测试：顺序故障转移、短路、错误汇总"""

import pytest

from quote_service.exceptions import AllSourcesExhausted, SourceMalformed, SourceTimeout
from quote_service.layers.acquisition import AcquisitionLayer
from quote_service.layers.sources.synthetic import SyntheticAdapter
from quote_service.models.stock import FinancialSnapshot

from conftest import FailingAdapter, StaticAdapter, make_candles


class TestFailover:
    @pytest.mark.asyncio
    async def test_primary_timeout_uses_secondary(self):
        primary = FailingAdapter("primary", SourceTimeout("slow", source="primary"))
        secondary = StaticAdapter(
            "secondary",
            make_candles([10.0 + i * 0.1 for i in range(50)]),
            FinancialSnapshot(pe_ttm=12.0),
        )
        result = await AcquisitionLayer([primary, secondary]).acquire("sh.600519")
        assert result.source == "secondary"
        assert len(result.candles) == 50
        assert result.financials.pe_ttm == 12.0

    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self):
        primary = StaticAdapter("primary", make_candles([10.0, 11.0]))
        secondary = StaticAdapter("secondary", make_candles([20.0]))
        result = await AcquisitionLayer([primary, secondary]).acquire("000858")
        assert result.source == "primary"
        assert secondary.calls == 0

    @pytest.mark.asyncio
    async def test_empty_candles_fall_through(self):
        empty = StaticAdapter("empty", [])
        backup = StaticAdapter("backup", make_candles([10.0]))
        result = await AcquisitionLayer([empty, backup]).acquire("000858")
        assert result.source == "backup"

    @pytest.mark.asyncio
    async def test_unexpected_error_fall_through(self):
        broken = FailingAdapter("broken", RuntimeError("boom"))
        backup = StaticAdapter("backup", make_candles([10.0]))
        result = await AcquisitionLayer([broken, backup]).acquire("000858")
        assert result.source == "backup"
        assert broken.calls == 1

    @pytest.mark.asyncio
    async def test_result_not_merged(self):
        primary = StaticAdapter("primary", make_candles([10.0]), FinancialSnapshot(pb=2.0))
        result = await AcquisitionLayer([primary]).acquire("000858")
        assert result.financials.pe_ttm is None
        assert result.financials.roe is None


class TestExhausted:
    @pytest.mark.asyncio
    async def test_all_fail(self):
        adapters = [
            FailingAdapter("a", SourceTimeout("slow", source="a")),
            FailingAdapter("b", SourceMalformed("bad json", source="b")),
        ]
        with pytest.raises(AllSourcesExhausted) as exc_info:
            await AcquisitionLayer(adapters).acquire("000858")
        err = exc_info.value
        assert [name for name, _ in err.errors] == ["a", "b"]
        assert "a: slow" in str(err)
        assert "b: bad json" in str(err)
        assert all(adapter.calls == 1 for adapter in adapters)

    @pytest.mark.asyncio
    async def test_no_adapters(self):
        with pytest.raises(AllSourcesExhausted):
            await AcquisitionLayer([]).acquire("000858")

    @pytest.mark.asyncio
    async def test_synthetic_tail_never_exhausts(self):
        adapters = [FailingAdapter("a"), SyntheticAdapter(days=30)]
        result = await AcquisitionLayer(adapters).acquire("000858")
        assert result.synthetic is True
        assert result.source == "synthetic"


class TestProviders:
    def test_priority_order(self):
        layer = AcquisitionLayer([StaticAdapter("x", []), SyntheticAdapter()])
        assert layer.providers() == [
            {"id": "x", "priority": 1, "synthetic": False},
            {"id": "synthetic", "priority": 2, "synthetic": True},
        ]

    def test_default_chain(self):
        ids = [p["id"] for p in AcquisitionLayer().providers()]
        assert ids[:2] == ["eastmoney", "tencent"]
