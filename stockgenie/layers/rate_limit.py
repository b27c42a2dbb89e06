"""
限流器
按提供商维护分钟 / 日两个滚动窗口的调用计数，纯内存记账，不做任何 I/O。

使用约定：try_reserve → 发起网络请求 → 请求确认成功后 record。
try_reserve 本身不计数，预留后未真正发出请求的调用方可以再次预留而不消耗额度。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from stockgenie.config import RateLimitConfig

logger = logging.getLogger(__name__)

MINUTE = "minute"
DAY = "day"

_WINDOW_SECONDS = {
    MINUTE: 60.0,
    DAY: 86400.0,
}


@dataclass
class RateLimitWindow:
    count: int
    window_start: float


class RateLimiter:
    """单进程限流器，计数由锁保护，可被多个工作线程 / 协程共享"""

    def __init__(
        self,
        limits: Optional[Mapping[str, RateLimitConfig]] = None,
        default: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._limits: Dict[str, RateLimitConfig] = dict(limits or {})
        self._default = default or RateLimitConfig()
        self._clock = clock
        self._windows: Dict[Tuple[str, str], RateLimitWindow] = {}
        self._lock = threading.Lock()

    def limits_for(self, provider: str) -> RateLimitConfig:
        return self._limits.get(provider, self._default)

    def _ceiling(self, provider: str, kind: str) -> int:
        limits = self.limits_for(provider)
        return limits.calls_per_minute if kind == MINUTE else limits.calls_per_day

    def _window(self, provider: str, kind: str, now: float) -> RateLimitWindow:
        """取得窗口，若已超过一个窗口长度则归零并以 now 为新起点（需持锁调用）"""
        window = self._windows.get((provider, kind))
        if window is None:
            window = RateLimitWindow(count=0, window_start=now)
            self._windows[(provider, kind)] = window
        elif now - window.window_start >= _WINDOW_SECONDS[kind]:
            window.count = 0
            window.window_start = now
        return window

    # ── 预留 / 记账 ───────────────────────────────────────

    def try_reserve(self, provider: str) -> bool:
        """检查分钟与日窗口是否均未达上限（不计数）"""
        now = self._clock()
        with self._lock:
            for kind in (MINUTE, DAY):
                window = self._window(provider, kind, now)
                ceiling = self._ceiling(provider, kind)
                if window.count >= ceiling:
                    logger.warning(
                        f"{provider} 触发限流（{kind}）: {window.count}/{ceiling}"
                    )
                    return False
        return True

    def record(self, provider: str) -> None:
        """记录一次真实发生的网络调用"""
        now = self._clock()
        with self._lock:
            minute = self._window(provider, MINUTE, now)
            day = self._window(provider, DAY, now)
            minute.count += 1
            day.count += 1
            logger.debug(
                f"记录 {provider} 调用，分钟 {minute.count}，当日 {day.count}"
            )

    # ── 观测 ──────────────────────────────────────────────

    def status(self, provider: str) -> dict:
        """返回两个窗口的 当前计数 / 上限"""
        now = self._clock()
        with self._lock:
            result = {"provider": provider}
            for kind in (MINUTE, DAY):
                window = self._window(provider, kind, now)
                result[kind] = {
                    "current": window.count,
                    "limit": self._ceiling(provider, kind),
                }
        return result

    def describe(self, provider: str) -> str:
        st = self.status(provider)
        return (
            f"API: {provider}, "
            f"Minute: {st[MINUTE]['current']}/{st[MINUTE]['limit']}, "
            f"Day: {st[DAY]['current']}/{st[DAY]['limit']}"
        )
