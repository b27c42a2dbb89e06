"""
限流状态路由
GET /api/rate-limit/status               - 当前提供商的限流状态
GET /api/rate-limit/status/{provider}    - 指定提供商的限流状态
GET /api/rate-limit/optimization         - 去重 / 重试 / 工作池统计
"""

from fastapi import APIRouter

from stockgenie.models.response import ApiResponse
from stockgenie.services.stock_service import get_stock_service

router = APIRouter(prefix="/api/rate-limit", tags=["限流"])


@router.get("/status", response_model=ApiResponse)
async def rate_limit_status():
    return ApiResponse.ok(data=get_stock_service().rate_limit_status())


@router.get("/status/{provider}", response_model=ApiResponse)
async def rate_limit_status_for(provider: str):
    return ApiResponse.ok(data=get_stock_service().rate_limit_status(provider))


@router.get("/optimization", response_model=ApiResponse)
async def optimization_stats():
    return ApiResponse.ok(data=get_stock_service().optimization_stats())
