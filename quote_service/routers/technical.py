"""
技术分析路由
GET /api/technical/{code}  - 获取技术指标
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from quote_service.layers.analysis import SUPPORTED_INDICATORS
from quote_service.models.response import ApiResponse
from quote_service.services.technical_service import get_technical_service

router = APIRouter(prefix="/api/technical", tags=["技术分析"])


@router.get("/{code}", response_model=ApiResponse)
async def get_technical_indicators(
    code: str,
    indicators: Optional[str] = Query(
        default=None,
        description=f"逗号分隔的指标列表，支持: {', '.join(SUPPORTED_INDICATORS)}，不填则返回全部",
    ),
    limit: Optional[int] = Query(default=None, ge=1, description="只返回最近 N 根 K 线"),
):
    """
    获取股票技术分析指标

    - `indicators` 示例: `ma,macd,rsi`
    """
    indicator_list: Optional[List[str]] = None
    if indicators:
        indicator_list = [i.strip().lower() for i in indicators.split(",") if i.strip()]
        unknown = [i for i in indicator_list if i not in SUPPORTED_INDICATORS]
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"不支持的指标: {unknown}，支持的指标: {SUPPORTED_INDICATORS}",
            )

    result = await get_technical_service().get_indicators(
        code=code, indicators=indicator_list, limit=limit
    )
    return ApiResponse.ok(data=result)
