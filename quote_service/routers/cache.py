"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
POST /api/cache/clear     - 清理缓存（整个命名空间或单个键）
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from quote_service.layers.cache import ANALYSIS_NS, MARKET_NS, get_cache_layer
from quote_service.models.response import ApiResponse
from quote_service.services.stock_service import get_stock_service

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])

_NAMESPACES = (MARKET_NS, ANALYSIS_NS)


class ClearRequest(BaseModel):
    namespace: str
    code: Optional[str] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats():
    """获取缓存统计信息（各后端条目数量）"""
    stats = await get_cache_layer().stats()
    return ApiResponse.ok(data=stats)


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(body: ClearRequest):
    """清理指定命名空间；行情命名空间可只清理单个代码"""
    if body.namespace not in _NAMESPACES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"未知的命名空间: {body.namespace}，可选: {list(_NAMESPACES)}",
        )
    if body.code and body.namespace == MARKET_NS:
        await get_stock_service().invalidate(body.code)
        return ApiResponse.ok(message=f"缓存已清理: {body.namespace}:{body.code}")
    await get_cache_layer().clear(body.namespace)
    return ApiResponse.ok(message=f"缓存已清理: {body.namespace}")
