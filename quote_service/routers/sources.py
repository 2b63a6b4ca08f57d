"""
数据源路由
GET /api/sources   - 故障转移链（按优先级）
"""

from fastapi import APIRouter

from quote_service.config import settings
from quote_service.layers.acquisition import get_acquisition_layer
from quote_service.models.response import ApiResponse

router = APIRouter(prefix="/api/sources", tags=["数据源"])

_DESCRIPTIONS = {
    "eastmoney": "东方财富：日 K + 实时估值 + 财务报表，三路并发",
    "tencent": "腾讯行情：日 K + 报价估值，单次请求",
    "synthetic": "本地合成数据，断网兜底，非真实行情",
}


@router.get("", response_model=ApiResponse)
async def list_sources():
    """获取当前配置的数据源故障转移链"""
    providers = [
        {**p, "description": _DESCRIPTIONS.get(p["id"], "")}
        for p in get_acquisition_layer().providers()
    ]
    return ApiResponse.ok(
        data={
            "providers": providers,
            "request_timeout": settings.REQUEST_TIMEOUT,
            "synthetic_fallback": settings.SYNTHETIC_FALLBACK_ENABLED,
        },
    )
