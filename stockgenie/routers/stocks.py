"""
股票数据路由
GET  /api/stocks/{symbol}/history   - 获取历史 K 线
GET  /api/stocks/{symbol}/latest    - 获取最新一根 K 线
POST /api/stocks/{symbol}/refresh   - 清除缓存并重新获取
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from stockgenie.models.response import ApiResponse
from stockgenie.services.stock_service import get_stock_service

router = APIRouter(prefix="/api/stocks", tags=["股票数据"])

_DEFAULT_DAYS = 30


def _parse_date(value: Optional[str], default: date) -> date:
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"日期格式错误: {value}，应为 YYYY-MM-DD",
        )


@router.get("/{symbol}/history", response_model=ApiResponse)
async def get_stock_history(
    symbol: str,
    start_date: Optional[str] = Query(
        default=None, description="开始日期 YYYY-MM-DD，默认 30 天前"
    ),
    end_date: Optional[str] = Query(
        default=None, description="结束日期 YYYY-MM-DD，默认今天"
    ),
    force_refresh: bool = Query(default=False),
):
    """获取股票历史 K 线数据"""
    end = _parse_date(end_date, date.today())
    start = _parse_date(start_date, end - timedelta(days=_DEFAULT_DAYS))
    svc = get_stock_service()
    try:
        result = await svc.get_history(symbol, start, end, force_refresh=force_refresh)
        return ApiResponse.ok(data=result)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )


@router.get("/{symbol}/latest", response_model=ApiResponse)
async def get_latest(symbol: str):
    """获取最近一个交易日的 K 线"""
    svc = get_stock_service()
    try:
        bar = await svc.get_latest(symbol)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )
    if bar is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{symbol} 暂无数据",
        )
    return ApiResponse.ok(data=bar.model_dump(mode="json"))


@router.post("/{symbol}/refresh", response_model=ApiResponse)
async def refresh_stock(
    symbol: str,
    days: int = Query(default=_DEFAULT_DAYS, ge=1, le=3650),
):
    """清除该股票的结果缓存并重新获取最近数据"""
    svc = get_stock_service()
    try:
        result = await svc.refresh(symbol, days=days)
        return ApiResponse.ok(data=result, message=f"{result['symbol']} 数据已刷新")
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )
