"""
HTTP 路由测试（TestClient，不需要真实数据库与网络）

数据源替换为内存适配器，缓存替换为内存后端。
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from quote_service.layers import acquisition as acquisition_module
from quote_service.layers import cache as cache_module
from quote_service.layers.acquisition import AcquisitionLayer
from quote_service.models.report import AnalysisReport
from quote_service.models.stock import FinancialSnapshot
from quote_service.services import report_service, stock_service, technical_service
from quote_service.services.report_service import ReportService
from quote_service.services.stock_service import StockService
from quote_service.services.technical_service import TechnicalService

from conftest import FailingAdapter, StaticAdapter, make_candles


class EchoGenerator:
    async def generate(self, record, language):
        return AnalysisReport(stock_code=record.code, timestamp=record.last_update)


@pytest.fixture
def adapter():
    return StaticAdapter(
        "primary",
        make_candles([10 + (i % 7) * 0.5 for i in range(60)]),
        FinancialSnapshot(pe_ttm=20.0, pb=4.0),
    )


@pytest.fixture
def services(monkeypatch, memory_cache, adapter):
    """替换模块级单例"""
    acquisition = AcquisitionLayer([adapter])
    stocks = StockService(acquisition=acquisition, cache=memory_cache)
    monkeypatch.setattr(acquisition_module, "_acquisition", acquisition)
    monkeypatch.setattr(cache_module, "_cache", memory_cache)
    monkeypatch.setattr(stock_service, "_stock_service", stocks)
    monkeypatch.setattr(technical_service, "_technical_service", TechnicalService(stocks))
    monkeypatch.setattr(report_service, "_report_service", None)
    return stocks


@pytest.fixture
def client(services):
    """创建测试客户端，mock 数据库连接"""
    with patch("quote_service.db.init_mongodb", new_callable=AsyncMock, return_value=False), \
         patch("quote_service.db.init_redis", new_callable=AsyncMock, return_value=False), \
         patch("quote_service.db.close_connections", new_callable=AsyncMock), \
         patch("quote_service.db.check_health", new_callable=AsyncMock, return_value={
             "mongodb": {"status": "disabled"},
             "redis": {"status": "disabled"},
         }):
        from quote_service.main import app
        with TestClient(app) as c:
            yield c


# ─────────────────────────────────────────────────────────
# 1. 健康检查
# ─────────────────────────────────────────────────────────

class TestHealthRoutes:
    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["sources"] == ["primary"]
        assert body["data"]["databases"]["mongodb"]["status"] == "disabled"

    def test_healthz_endpoint(self, client):
        assert client.get("/healthz").json()["status"] == "ok"

    def test_readyz_endpoint(self, client):
        assert client.get("/readyz").json()["ready"] is True

    def test_root_endpoint(self, client):
        body = client.get("/").json()
        assert "version" in body
        assert "docs" in body

    def test_process_time_header(self, client):
        assert client.get("/healthz").headers["X-Process-Time"].endswith("ms")


# ─────────────────────────────────────────────────────────
# 2. 股票数据
# ─────────────────────────────────────────────────────────

class TestStockRoutes:
    def test_get_stock(self, client, adapter):
        resp = client.get("/api/stocks/sh.600519", params={"name": "贵州茅台"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["code"] == "sh.600519"
        assert data["name"] == "贵州茅台"
        assert data["source"] == "primary"
        assert len(data["candles"]) == 60
        assert data["candles"][-1]["ma20"] is not None
        assert data["financials"]["roe"] == pytest.approx(20.0)

    def test_cached_between_requests(self, client, adapter):
        client.get("/api/stocks/000858")
        client.get("/api/stocks/000858")
        assert adapter.calls == 1

    def test_force_refresh(self, client, adapter):
        client.get("/api/stocks/000858")
        client.get("/api/stocks/000858", params={"force_refresh": True})
        assert adapter.calls == 2

    def test_financials(self, client):
        resp = client.get("/api/stocks/000858/financials")
        assert resp.status_code == 200
        financials = resp.json()["data"]["financials"]
        assert financials["debt_ratio"] == 50.0
        assert set(financials["estimated"]) == {"roe", "debt_ratio"}

    def test_all_sources_fail_returns_502(self, client, monkeypatch, memory_cache):
        failing = StockService(acquisition=AcquisitionLayer([FailingAdapter("a")]), cache=memory_cache)
        monkeypatch.setattr(stock_service, "_stock_service", failing)
        resp = client.get("/api/stocks/000858")
        assert resp.status_code == 502
        body = resp.json()
        assert body["success"] is False
        assert "000858" in body["error"]
        assert body["message"] == "行情数据暂不可用"
        assert body["data"] is None

    def test_unhandled_error_returns_500(self, client, monkeypatch):
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        monkeypatch.setattr(stock_service.get_stock_service(), "get_stock", broken)
        from quote_service.main import app
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.get("/api/stocks/000858")
        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "内部服务错误"
        assert body["message"] == "boom"

    def test_candles_with_limit(self, client, adapter):
        resp = client.get("/api/stocks/000858/candles", params={"limit": 5})
        assert resp.status_code == 200
        candles = resp.json()["data"]["candles"]
        assert len(candles) == 5
        assert candles[-1]["ma20"] is not None
        assert len(client.get("/api/stocks/000858/candles").json()["data"]["candles"]) == 60
        assert adapter.calls == 1

    def test_cached_record_takes_requested_name(self, client):
        client.get("/api/stocks/000858", params={"name": "五粮液"})
        data = client.get("/api/stocks/000858", params={"name": "WLY"}).json()["data"]
        assert data["name"] == "WLY"


# ─────────────────────────────────────────────────────────
# 3. 技术指标
# ─────────────────────────────────────────────────────────

class TestTechnicalRoutes:
    def test_all_indicators(self, client):
        resp = client.get("/api/technical/000858")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["indicators"] == ["ma", "macd", "rsi", "kdj", "boll"]
        assert len(data["history"]) == 60
        assert "rsi" in data["latest"]

    def test_selected_with_limit(self, client):
        resp = client.get("/api/technical/000858", params={"indicators": "MA, rsi", "limit": 5})
        data = resp.json()["data"]
        assert data["indicators"] == ["ma", "rsi"]
        assert len(data["history"]) == 5
        assert "kdj_k" not in data["latest"]
        assert "ma5" in data["latest"]

    def test_unknown_indicator(self, client):
        resp = client.get("/api/technical/000858", params={"indicators": "ma,atr"})
        assert resp.status_code == 400

    def test_invalid_limit(self, client):
        assert client.get("/api/technical/000858", params={"limit": 0}).status_code == 422


# ─────────────────────────────────────────────────────────
# 4. 数据源 / 缓存管理
# ─────────────────────────────────────────────────────────

class TestSourceRoutes:
    def test_list_sources(self, client):
        data = client.get("/api/sources").json()["data"]
        assert [p["id"] for p in data["providers"]] == ["primary"]
        assert data["providers"][0]["priority"] == 1


class TestCacheRoutes:
    def test_stats(self, client):
        client.get("/api/stocks/000858")
        data = client.get("/api/cache/stats").json()["data"]
        assert data["memory"]["entries"] == 1
        assert data["redis"]["status"] == "disabled"

    def test_clear_code(self, client, adapter):
        client.get("/api/stocks/000858")
        resp = client.post("/api/cache/clear", json={"namespace": "market", "code": "000858"})
        assert resp.status_code == 200
        client.get("/api/stocks/000858")
        assert adapter.calls == 2

    def test_clear_namespace(self, client, memory_backend):
        client.get("/api/stocks/000858")
        client.get("/api/stocks/sh.600519")
        client.post("/api/cache/clear", json={"namespace": "market"})
        assert memory_backend.store == {}

    def test_unknown_namespace(self, client):
        resp = client.post("/api/cache/clear", json={"namespace": "users"})
        assert resp.status_code == 400


# ─────────────────────────────────────────────────────────
# 5. 研报
# ─────────────────────────────────────────────────────────

class TestReportRoutes:
    def test_not_configured(self, client):
        assert client.get("/api/reports/000858").status_code == 503

    def test_configured(self, client, monkeypatch, memory_cache):
        monkeypatch.setattr(
            report_service, "_report_service", ReportService(EchoGenerator(), cache=memory_cache)
        )
        resp = client.get("/api/reports/000858", params={"language": "en"})
        assert resp.status_code == 200
        assert resp.json()["data"]["stock_code"] == "000858"

    def test_invalid_language(self, client):
        assert client.get("/api/reports/000858", params={"language": "fr"}).status_code == 422
