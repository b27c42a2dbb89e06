"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
POST /api/cache/clear     - 清理缓存
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from stockgenie.layers.cache import get_cache_layer
from stockgenie.models.response import ApiResponse

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class ClearRequest(BaseModel):
    namespace: Optional[str] = None
    key_parts: Optional[List[str]] = None


@router.get("/stats", response_model=ApiResponse)
async def cache_stats():
    """获取缓存统计信息（各后端键数量）"""
    stats = await get_cache_layer().stats()
    return ApiResponse.ok(data=stats)


@router.post("/clear", response_model=ApiResponse)
async def clear_cache(body: ClearRequest):
    """清理指定命名空间（不填则全部）的缓存条目"""
    parts = body.key_parts or []
    removed = await get_cache_layer().clear(body.namespace, *parts)
    label = ":".join([body.namespace or "*"] + parts)
    return ApiResponse.ok(data={"removed": removed}, message=f"缓存已清理: {label}")
