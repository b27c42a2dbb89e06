"""
带重试的拉取器
每次尝试前向限流器预留额度；被拒绝时冷却后重试同一次尝试（不计失败）。
4xx 类错误立即终止，其余错误按 base_delay * 第 n 次 线性退避重试。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from stockgenie.exceptions import ConfigurationError, ProviderRejection, RateLimitExceeded
from stockgenie.layers.provider import ProviderClient, ProviderQuery
from stockgenie.layers.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


# ── 拉取结果 ──────────────────────────────────────────────

@dataclass(frozen=True)
class Success:
    payload: str
    attempts: int = 1


@dataclass(frozen=True)
class RetryableFailure:
    cause: Exception
    attempts: int = 1


@dataclass(frozen=True)
class NonRetryableFailure:
    cause: Exception
    attempts: int = 1


FetchOutcome = Union[Success, RetryableFailure, NonRetryableFailure]


@dataclass(frozen=True)
class FetchRequest:
    symbol: str
    query: ProviderQuery = ProviderQuery()


class RetryingFetcher:
    """有限次数重试 + 线性退避"""

    def __init__(
        self,
        client: ProviderClient,
        rate_limiter: RateLimiter,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_rate_limit_waits: int = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._limiter = rate_limiter
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_rate_limit_waits = max_rate_limit_waits
        self._sleep = sleep

    @property
    def provider(self) -> str:
        return self._client.name

    async def fetch(self, request: FetchRequest) -> FetchOutcome:
        provider = self.provider
        attempt = 0
        waits = 0
        last: FetchOutcome = RetryableFailure(RuntimeError("未发起任何请求"), attempts=0)

        while attempt < self.max_attempts:
            if not self._limiter.try_reserve(provider):
                waits += 1
                if waits > self.max_rate_limit_waits:
                    logger.error(f"{provider} 限流等待次数超限（{self.max_rate_limit_waits}），放弃 {request.symbol}")
                    return RetryableFailure(
                        RateLimitExceeded(f"{provider} 限流等待超过 {self.max_rate_limit_waits} 次"),
                        attempts=attempt,
                    )
                cooldown = self.base_delay * 2
                logger.warning(f"{provider} 限流中，{cooldown:.1f}s 后重试")
                await self._sleep(cooldown)
                continue

            waits = 0
            attempt += 1
            try:
                payload = await self._client.raw_fetch(request.symbol, request.query)
            except (ProviderRejection, ConfigurationError) as exc:
                logger.warning(
                    f"{provider} 第 {attempt} 次请求被拒绝（不可重试）{request.symbol}: {exc}"
                )
                return NonRetryableFailure(exc, attempts=attempt)
            except Exception as exc:
                last = RetryableFailure(exc, attempts=attempt)
                logger.warning(
                    f"{provider} 第 {attempt} 次请求失败（可重试）{request.symbol}: {exc}"
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.base_delay * attempt)
                continue

            self._limiter.record(provider)
            logger.debug(f"{provider} 第 {attempt} 次请求成功: {request.symbol}")
            return Success(payload, attempts=attempt)

        logger.error(f"{provider} 请求 {request.symbol} 在 {self.max_attempts} 次尝试后仍失败")
        return last
