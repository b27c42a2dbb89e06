"""
存储后端连接
MongoDB 保存 K 线与技术指标，Redis 保存结果缓存。
连接失败只记录降级状态：K 线退回进程内存，缓存退回本地文件。
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from redis.asyncio import ConnectionPool, Redis

from stockgenie.config import settings

logger = logging.getLogger(__name__)

MONGODB = "mongodb"
REDIS = "redis"


@dataclass
class BackendState:
    role: str
    fallback: str
    host: str
    connected: bool = False
    error: Optional[str] = None


_backends: Dict[str, BackendState] = {
    MONGODB: BackendState(role="bar_store", fallback="memory_fallback", host=settings.MONGODB_HOST),
    REDIS: BackendState(role="result_cache", fallback="file_fallback", host=settings.REDIS_HOST),
}

_mongo_client: Optional[AsyncIOMotorClient] = None
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


def _mark(name: str, connected: bool, error: Optional[str] = None) -> bool:
    state = _backends[name]
    state.connected = connected
    state.error = error
    return connected


# ── MongoDB ───────────────────────────────────────────────

async def init_mongodb() -> bool:
    """连接 MongoDB，返回是否可用"""
    global _mongo_client
    if not settings.MONGODB_ENABLED:
        logger.info("MongoDB 未启用，K 线仅保存在进程内存")
        return _mark(MONGODB, False)

    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=settings.MONGO_MAX_CONNECTIONS,
        minPoolSize=settings.MONGO_MIN_CONNECTIONS,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGO_SOCKET_TIMEOUT_MS,
    )
    try:
        await client.admin.command("ping")
    except Exception as exc:
        client.close()
        logger.warning(f"⚠️ MongoDB 不可达，K 线存储降级为内存: {exc}")
        return _mark(MONGODB, False, str(exc))

    _mongo_client = client
    logger.info(f"✅ MongoDB 已连接 {settings.MONGODB_HOST}:{settings.MONGODB_PORT}/{settings.MONGODB_DATABASE}")
    return _mark(MONGODB, True)


def get_mongo_db() -> Optional[AsyncIOMotorDatabase]:
    """K 线库；未连接时为 None"""
    if _mongo_client is None:
        return None
    return _mongo_client[settings.MONGODB_DATABASE]


# ── Redis ─────────────────────────────────────────────────

async def init_redis() -> bool:
    """连接 Redis，返回是否可用"""
    global _redis_pool, _redis_client
    if not settings.REDIS_ENABLED:
        logger.info("Redis 未启用，结果缓存写入文件")
        return _mark(REDIS, False)

    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=10,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception as exc:
        await pool.disconnect()
        logger.warning(f"⚠️ Redis 不可达，结果缓存降级为文件: {exc}")
        return _mark(REDIS, False, str(exc))

    _redis_pool, _redis_client = pool, client
    logger.info(f"✅ Redis 已连接 {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return _mark(REDIS, True)


def get_redis() -> Optional[Redis]:
    """缓存客户端；未连接时为 None"""
    return _redis_client


# ── 生命周期 / 健康检查 ────────────────────────────────────

async def close_connections():
    global _mongo_client, _redis_pool, _redis_client
    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
        _mark(MONGODB, False)
        logger.info("MongoDB 连接已关闭")
    if _redis_client is not None:
        await _redis_client.aclose()
        await _redis_pool.disconnect()
        _redis_client, _redis_pool = None, None
        _mark(REDIS, False)
        logger.info("Redis 连接已关闭")


async def _probe(name: str) -> None:
    if name == MONGODB:
        await _mongo_client.admin.command("ping")
    else:
        await _redis_client.ping()


async def check_health() -> dict:
    """
    各后端状态：healthy / unhealthy（已连接但探测失败）/
    memory_fallback、file_fallback（启用但未连接）/ disabled
    """
    enabled = {MONGODB: settings.MONGODB_ENABLED, REDIS: settings.REDIS_ENABLED}
    result = {}
    for name, state in _backends.items():
        entry = {"role": state.role, "host": state.host}
        if state.connected:
            try:
                await _probe(name)
                entry["status"] = "healthy"
            except Exception as exc:
                entry.update(status="unhealthy", error=str(exc))
        elif enabled[name]:
            entry["status"] = state.fallback
            if state.error:
                entry["error"] = state.error
        else:
            entry["status"] = "disabled"
        result[name] = entry
    return result
