"""
请求去重器
同一请求键在任一时刻只执行一次底层操作，并发调用方共享同一结果（成功或异常）。
只合并并发，不缓存结果：操作结束的同时即从在途表移除。
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class Deduplicator:
    """在途请求表 + 有界工作池"""

    def __init__(self, max_workers: int = 10):
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}
        self._lock = threading.Lock()
        self._max_workers = max_workers
        self._workers: Optional[asyncio.Semaphore] = None
        self._launched = 0
        self._attached = 0

    def _semaphore(self) -> asyncio.Semaphore:
        if self._workers is None:
            self._workers = asyncio.Semaphore(self._max_workers)
        return self._workers

    async def run_deduped(self, key: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        执行或挂接到键为 key 的在途操作

        Args:
            key: 可复现的请求键
            operation: 无参可调用对象，返回 awaitable
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            task = self._pending.get(key)
            if task is None:
                task = loop.create_task(self._execute(key, operation))
                self._pending[key] = task
                self._launched += 1
                logger.debug(f"发起新请求: {key}")
            else:
                self._attached += 1
                logger.debug(f"请求已在途，挂接等待: {key}")
        # 调用方被取消时不影响其他等待者
        return await asyncio.shield(task)

    async def _execute(self, key: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            async with self._semaphore():
                return await operation()
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def stats(self) -> dict:
        with self._lock:
            return {
                "pending_requests": len(self._pending),
                "launched": self._launched,
                "attached": self._attached,
                "max_workers": self._max_workers,
            }
