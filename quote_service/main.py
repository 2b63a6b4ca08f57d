"""
A 股行情数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn quote_service.main:app --host 0.0.0.0 --port 8002
    python -m quote_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quote_service import __version__, db
from quote_service.config import settings
from quote_service.exceptions import MarketDataUnavailable
from quote_service.layers.acquisition import get_acquisition_layer
from quote_service.models.response import ApiResponse
from quote_service.routers import cache, health, reports, sources, stocks, technical

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 A-Share Quote Service v{__version__} 启动中")
    logger.info(f"   MongoDB   : {settings.MONGODB_HOST}:{settings.MONGODB_PORT}")
    logger.info(f"   Redis     : {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    logger.info(f"   数据源    : {[p['id'] for p in get_acquisition_layer().providers()]}")
    logger.info("=" * 60)

    # 初始化存储连接（失败不阻断启动，缓存降级为文件）
    mongo_ok = await db.init_mongodb()
    redis_ok = await db.init_redis()

    if mongo_ok and redis_ok:
        logger.info("✅ 所有存储连接就绪")
    elif mongo_ok:
        logger.info("✅ MongoDB 就绪，缓存使用 MongoDB + 文件模式")
    elif redis_ok:
        logger.warning("⚠️ MongoDB 不可用，缓存降级为 Redis + 文件模式")
    else:
        logger.warning("⚠️ 存储均不可用，缓存降级为文件模式")

    yield

    logger.info("🔄 行情服务正在关闭...")
    for adapter in get_acquisition_layer().adapters:
        transport = getattr(adapter, "transport", None)
        if transport is not None:
            await transport.aclose()
    await db.close_connections()
    logger.info("✅ 行情服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="A 股行情数据服务",
    description=(
        "多数据源行情获取与指标增强服务：\n"
        "- 🌐 东方财富 → 腾讯 → 合成数据，按优先级故障转移\n"
        "- 📈 技术指标（MA / MACD / RSI / KDJ / BOLL）\n"
        "- 🧮 财务快照合并与补全（估算字段单独标注）\n"
        "- 🗄️ 多级缓存（Redis → MongoDB → 文件），TTL 惰性过期\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 多数据源获取与故障转移\n"
        "Cache Layer        ← Redis / MongoDB / 文件三级缓存\n"
        "Processing Layer   ← K 线清洗、格式化、标准化\n"
        "Analysis Layer     ← 技术指标计算\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(MarketDataUnavailable)
async def market_data_unavailable_handler(request: Request, exc: MarketDataUnavailable):
    logger.error(f"行情获取失败: {exc.code}: {exc.cause}")
    return JSONResponse(
        status_code=502,
        content=ApiResponse.from_exception(exc, message="行情数据暂不可用").model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(),
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(stocks.router)
app.include_router(technical.router)
app.include_router(sources.router)
app.include_router(cache.router)
app.include_router(reports.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "A-Share Quote Service",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "quote_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
