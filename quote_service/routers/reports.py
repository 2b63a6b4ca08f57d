"""
研报路由
GET /api/reports/{code}  - 获取结构化研报（需注册外部生成服务）
"""

from fastapi import APIRouter, HTTPException, Query, status

from quote_service.models.response import ApiResponse
from quote_service.services.report_service import get_report_service
from quote_service.services.stock_service import get_stock_service

router = APIRouter(prefix="/api/reports", tags=["研报"])


@router.get("/{code}", response_model=ApiResponse)
async def get_report(
    code: str,
    language: str = Query(default="zh", pattern="^(zh|en)$"),
    force_refresh: bool = Query(default=False),
):
    """基于增强记录获取研报，结果缓存 24 小时"""
    svc = get_report_service()
    if svc is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="研报生成服务未配置",
        )
    record = await get_stock_service().get_stock(code)
    report = await svc.get_report(record, language=language, force_refresh=force_refresh)
    return ApiResponse.ok(data=report.model_dump(mode="json"))
