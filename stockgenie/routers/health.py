"""健康检查与探针路由"""

import time

from fastapi import APIRouter

from stockgenie import __version__
from stockgenie.config import settings
from stockgenie.db import check_health
from stockgenie.models.response import ApiResponse

router = APIRouter(tags=["健康检查"])


@router.get("/health", response_model=ApiResponse)
async def health():
    """
    服务整体状态：存储后端、行情数据源配置。
    后端降级（内存 / 文件）不影响整体 status。
    """
    provider_cfg = settings.provider_config()
    data = {
        "status": "ok",
        "service": "StockGenie DataService",
        "version": __version__,
        "timestamp": int(time.time()),
        "databases": await check_health(),
        "market_data": {
            "provider": provider_cfg.name,
            "configured": provider_cfg.has_credentials,
        },
    }
    return ApiResponse.ok(data=data, message="服务运行正常")


# ── 探针 ──────────────────────────────────────────────────

@router.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}


@router.get("/readyz", include_in_schema=False)
async def readyz():
    return {"ready": True}
