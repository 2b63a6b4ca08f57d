"""
股票数据路由
GET /api/stocks/{code}              - 获取增强后的完整记录（K 线 + 指标 + 财务）
GET /api/stocks/{code}/financials   - 仅获取补全后的财务快照
GET /api/stocks/{code}/candles      - 获取最近 N 根增强 K 线
"""

from typing import Optional

from fastapi import APIRouter, Query

from quote_service.models.response import ApiResponse
from quote_service.services.stock_service import get_stock_service

router = APIRouter(prefix="/api/stocks", tags=["股票数据"])


@router.get("/{code}", response_model=ApiResponse)
async def get_stock(
    code: str,
    name: str = Query(default="", description="展示名称"),
    force_refresh: bool = Query(default=False),
):
    """获取股票增强记录；所有数据源失败时返回 502"""
    record = await get_stock_service().get_stock(code, name=name, force_refresh=force_refresh)
    return ApiResponse.ok(
        data=record.model_dump(mode="json"),
        message=f"来源：{record.source}",
    )


@router.get("/{code}/financials", response_model=ApiResponse)
async def get_financials(
    code: str,
    force_refresh: bool = Query(default=False),
):
    """获取补全后的财务快照，estimated 列出估算字段"""
    financials = await get_stock_service().get_financials(code, force_refresh=force_refresh)
    return ApiResponse.ok(
        data={"code": code, "financials": financials.model_dump(mode="json") if financials else None},
    )


@router.get("/{code}/candles", response_model=ApiResponse)
async def get_candles(
    code: str,
    limit: Optional[int] = Query(default=None, ge=1, description="只返回最近 N 根 K 线"),
    force_refresh: bool = Query(default=False),
):
    """获取增强后的日 K 序列（含指标字段）"""
    candles = await get_stock_service().get_candles(code, limit=limit, force_refresh=force_refresh)
    return ApiResponse.ok(
        data={"code": code, "candles": [c.model_dump(mode="json") for c in candles]},
    )
