"""
Layer 2 – 结果缓存层
缓存行情摘要、技术指标摘要与大模型分析结果。
优先写入 Redis；Redis 未连接或出错时写入本地 JSON 文件。
"""

import hashlib
import json
import logging
import os
import time
from typing import Any, List, Optional

from stockgenie.config import settings
from stockgenie.db import get_redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "stockgenie"


def _make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键；超长键保留首段（股票代码）后压缩为 md5，以便按股票前缀清理"""
    raw = ":".join([KEY_PREFIX, namespace] + [str(p) for p in parts])
    if len(raw) > 200:
        head = [KEY_PREFIX, namespace] + ([str(parts[0])] if parts else [])
        raw = ":".join(head + [hashlib.md5(raw.encode()).hexdigest()])
    return raw


def _key_prefix(namespace: Optional[str], parts) -> str:
    segments = [KEY_PREFIX] + ([namespace] if namespace else []) + [str(p) for p in parts]
    return ":".join(segments) + ":"


class _FileBackend:
    """每个键一个 JSON 文件：{"value": ..., "expires_at": 时间戳}"""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, key.replace(":", "_").replace("/", "_") + ".json")

    def _files(self) -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        return [f for f in os.listdir(self.directory) if f.endswith(".json")]

    def read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.debug(f"文件缓存读取失败 {key}: {exc}")
            return None
        if doc.get("expires_at", 0) < time.time():
            self.remove(key)
            return None
        return doc.get("value")

    def write(self, key: str, value: Any, ttl: int) -> None:
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(self._path(key), "w", encoding="utf-8") as fh:
                json.dump({"value": value, "expires_at": time.time() + ttl}, fh, ensure_ascii=False, default=str)
        except OSError as exc:
            logger.warning(f"文件缓存写入失败 {key}: {exc}")

    def remove(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug(f"文件缓存删除失败 {key}: {exc}")

    def clear(self, prefix: str) -> int:
        file_prefix = prefix.replace(":", "_")
        removed = 0
        for name in self._files():
            if name.startswith(file_prefix):
                try:
                    os.remove(os.path.join(self.directory, name))
                    removed += 1
                except OSError as exc:
                    logger.debug(f"文件缓存删除失败 {name}: {exc}")
        return removed

    def stats(self) -> dict:
        return {"files": len(self._files()), "dir": self.directory, "status": "healthy"}


class CacheLayer:
    """两级缓存：Redis → 文件"""

    def __init__(self, cache_dir: Optional[str] = None):
        self.cache_dir = cache_dir or settings.CACHE_DIR
        self._files = _FileBackend(self.cache_dir)

    async def get(self, namespace: str, *parts: str) -> Optional[Any]:
        key = _make_key(namespace, *parts)
        redis = get_redis()
        if redis is not None:
            try:
                raw = await redis.get(key)
                if raw:
                    logger.debug(f"缓存命中（Redis）: {key}")
                    return json.loads(raw)
            except Exception as exc:
                logger.debug(f"Redis 读取失败: {exc}")

        value = self._files.read(key)
        if value is not None:
            logger.debug(f"缓存命中（文件）: {key}")
        return value

    async def set(self, value: Any, namespace: str, *parts: str, ttl: int = None) -> None:
        ttl = settings.CACHE_TTL if ttl is None else ttl
        key = _make_key(namespace, *parts)
        redis = get_redis()
        if redis is not None:
            try:
                await redis.setex(key, ttl, json.dumps(value, ensure_ascii=False, default=str))
                return
            except Exception as exc:
                logger.debug(f"Redis 写入失败，改写文件: {exc}")
        self._files.write(key, value, ttl)

    async def delete(self, namespace: str, *parts: str) -> None:
        key = _make_key(namespace, *parts)
        redis = get_redis()
        if redis is not None:
            try:
                await redis.delete(key)
            except Exception as exc:
                logger.debug(f"Redis 删除失败: {exc}")
        self._files.remove(key)

    async def clear(self, namespace: Optional[str] = None, *parts: str) -> int:
        """按命名空间及键前缀清除缓存（不传则全部），返回删除条数"""
        prefix = _key_prefix(namespace, parts)
        removed = 0
        redis = get_redis()
        if redis is not None:
            try:
                keys = [k async for k in redis.scan_iter(match=prefix + "*")]
                if keys:
                    removed += await redis.delete(*keys)
            except Exception as exc:
                logger.warning(f"Redis 清理失败: {exc}")
        removed += self._files.clear(prefix)
        logger.info(f"清除缓存 {prefix}*: {removed} 条")
        return removed

    async def stats(self) -> dict:
        result: dict = {"redis": {"status": "disabled"}}
        redis = get_redis()
        if redis is not None:
            try:
                result["redis"] = {"keys": await redis.dbsize(), "status": "healthy"}
            except Exception as exc:
                result["redis"] = {"status": "error", "error": str(exc)}
        result["file"] = self._files.stats()
        return result


# ── 模块级别单例 ──────────────────────────────────────────
_cache: Optional[CacheLayer] = None


def get_cache_layer() -> CacheLayer:
    global _cache
    if _cache is None:
        _cache = CacheLayer()
    return _cache
