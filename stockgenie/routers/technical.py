"""
技术分析路由
GET /api/technical/indicators          - 可用指标列表
GET /api/technical/{symbol}            - 获取技术指标
GET /api/technical/{symbol}/signals    - 获取交易信号
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from stockgenie.layers.analysis import parse_indicator_name
from stockgenie.models.response import ApiResponse
from stockgenie.services.technical_service import DEFAULT_DAYS, get_technical_service

router = APIRouter(prefix="/api/technical", tags=["技术分析"])


@router.get("/indicators", response_model=ApiResponse)
async def list_indicators():
    """可用技术指标及说明"""
    return ApiResponse.ok(data=get_technical_service().available_indicators())


@router.get("/{symbol}", response_model=ApiResponse)
async def get_technical_indicators(
    symbol: str,
    days: int = Query(default=DEFAULT_DAYS, ge=1, le=3650, description="回看自然日数"),
    indicators: Optional[str] = Query(
        default=None,
        description="逗号分隔的指标列表，如 SMA_20,RSI_14,MACD，不填则计算全部",
    ),
):
    """
    获取股票技术分析指标

    - `indicators` 示例: `SMA_20,EMA_12,MACD`
    """
    indicator_list: Optional[List[str]] = None
    if indicators:
        indicator_list = [i.strip().upper() for i in indicators.split(",") if i.strip()]
        unknown = [i for i in indicator_list if parse_indicator_name(i) is None]
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"不支持的指标: {unknown}",
            )

    svc = get_technical_service()
    try:
        result = await svc.get_indicators(symbol, days=days, names=indicator_list)
        return ApiResponse.ok(data=result)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )


@router.get("/{symbol}/signals", response_model=ApiResponse)
async def get_trading_signals(
    symbol: str,
    days: int = Query(default=DEFAULT_DAYS, ge=1, le=3650),
):
    """获取 SMA / RSI / MACD 及综合交易信号"""
    svc = get_technical_service()
    try:
        result = await svc.get_signals(symbol, days=days)
        return ApiResponse.ok(data=result)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )
