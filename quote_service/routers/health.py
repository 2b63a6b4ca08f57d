"""健康检查路由"""

import time

from fastapi import APIRouter

from quote_service import __version__, db
from quote_service.layers.acquisition import get_acquisition_layer

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health():
    """服务健康检查（含缓存存储状态与数据源链）"""
    db_health = await db.check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "A-Share Quote Service",
            "databases": db_health,
            "sources": [p["id"] for p in get_acquisition_layer().providers()],
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
