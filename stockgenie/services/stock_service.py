"""
股票数据服务
负责组装数据获取管道（限流器、去重器、重试拉取器、存储），
对外提供 K 线查询、刷新与限流状态接口。
"""

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional

from stockgenie.config import RateLimitConfig, StockGenieSettings, settings
from stockgenie.layers.acquisition import AcquisitionPipeline
from stockgenie.layers.cache import get_cache_layer
from stockgenie.layers.dedup import Deduplicator
from stockgenie.layers.fetcher import RetryingFetcher
from stockgenie.layers.processing import get_processing_layer
from stockgenie.layers.provider import build_provider_client
from stockgenie.layers.rate_limit import RateLimiter
from stockgenie.layers.store import BarStore, get_bar_store
from stockgenie.models.domain import Bar

logger = logging.getLogger(__name__)

_HISTORY_CACHE_NS = "history"
# refresh 时按股票清理的结果缓存命名空间
_SYMBOL_CACHE_NAMESPACES = (_HISTORY_CACHE_NS, "technical", "llm")
_LATEST_LOOKBACK_DAYS = 7
_REFRESH_DAYS = 30


def build_pipeline(
    cfg: StockGenieSettings,
    store: BarStore,
    rate_limiter: RateLimiter,
    deduplicator: Deduplicator,
) -> AcquisitionPipeline:
    """按配置装配数据获取管道"""
    provider_cfg = cfg.provider_config()
    client = build_provider_client(provider_cfg)
    fetcher = None
    if client is not None:
        fetcher = RetryingFetcher(
            client,
            rate_limiter,
            max_attempts=provider_cfg.max_attempts,
            base_delay=provider_cfg.retry_delay,
            max_rate_limit_waits=provider_cfg.max_rate_limit_waits,
        )
    return AcquisitionPipeline(store, client, fetcher, deduplicator)


def provider_rate_limits(cfg: StockGenieSettings) -> Dict[str, RateLimitConfig]:
    """各提供商的限额，取自 provider_config；当前提供商未登记时使用保守默认值"""
    names = list(cfg.rate_limits())
    if cfg.MARKET_DATA_PROVIDER not in names:
        names.append(cfg.MARKET_DATA_PROVIDER)
    return {name: cfg.provider_config(name).rate_limit for name in names}


class StockService:
    """股票数据业务服务"""

    def __init__(
        self,
        pipeline: Optional[AcquisitionPipeline] = None,
        rate_limiter: Optional[RateLimiter] = None,
        deduplicator: Optional[Deduplicator] = None,
        cfg: Optional[StockGenieSettings] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._cfg = cfg or settings
        self._limiter = rate_limiter or RateLimiter(provider_rate_limits(self._cfg))
        self._dedup = deduplicator or Deduplicator(self._cfg.FETCH_WORKER_POOL_SIZE)
        self._pipeline = pipeline or build_pipeline(
            self._cfg, get_bar_store(), self._limiter, self._dedup
        )
        self._cache = get_cache_layer()
        self._proc = get_processing_layer()
        self._today = today

    @property
    def provider(self) -> str:
        return self._pipeline.provider or self._cfg.MARKET_DATA_PROVIDER

    # ── K 线 ──────────────────────────────────────────────

    async def get_bars(self, symbol: str, start: dt.date, end: dt.date) -> List[Bar]:
        return await self._pipeline.get_bars(symbol, start, end)

    async def get_bars_for_days(self, symbol: str, days: int) -> List[Bar]:
        """最近 days 个自然日（含今天）的 K 线"""
        end = self._today()
        return await self.get_bars(symbol, end - dt.timedelta(days=days), end)

    async def get_history(
        self,
        symbol: str,
        start: dt.date,
        end: dt.date,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        获取历史 K 线（附涨跌额、涨跌幅、振幅）

        Args:
            symbol: 股票代码
            start: 开始日期
            end: 结束日期
            force_refresh: 是否跳过结果缓存
        """
        symbol = symbol.strip().upper()
        parts = (symbol, start.isoformat(), end.isoformat())
        if not force_refresh:
            cached = await self._cache.get(_HISTORY_CACHE_NS, *parts)
            if cached is not None:
                return cached

        bars = await self.get_bars(symbol, start, end)
        df = self._proc.add_basic_metrics(self._proc.bars_to_frame(bars))
        result = {
            "symbol": symbol,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "count": len(bars),
            "sources": self._proc.source_summary(bars),
            "records": self._proc.to_records(df),
        }

        # 模拟数据不进入缓存
        if bars and not any(b.is_synthetic for b in bars):
            await self._cache.set(result, _HISTORY_CACHE_NS, *parts, ttl=self._cfg.STOCK_DATA_CACHE_TTL)
        return result

    async def get_latest(self, symbol: str) -> Optional[Bar]:
        bars = await self.get_bars_for_days(symbol, _LATEST_LOOKBACK_DAYS)
        return bars[-1] if bars else None

    async def refresh(self, symbol: str, days: int = _REFRESH_DAYS) -> Dict[str, Any]:
        """清除该股票的结果缓存后重新获取最近 days 天数据"""
        symbol = symbol.strip().upper()
        logger.info(f"刷新 {symbol} 最近 {days} 天数据")
        cleared = 0
        for namespace in _SYMBOL_CACHE_NAMESPACES:
            cleared += await self._cache.clear(namespace, symbol)
        bars = await self.get_bars_for_days(symbol, days)
        return {
            "symbol": symbol,
            "days": days,
            "count": len(bars),
            "sources": self._proc.source_summary(bars),
            "cache_cleared": cleared,
        }

    # ── 限流 / 优化状态 ────────────────────────────────────

    def rate_limit_status(self, provider: Optional[str] = None) -> Dict[str, Any]:
        provider = provider or self.provider
        status = self._limiter.status(provider)
        status["summary"] = self._limiter.describe(provider)
        return status

    def optimization_stats(self) -> Dict[str, Any]:
        dedup = self._dedup.stats()
        return {
            "pending_requests": dedup["pending_requests"],
            "launched_requests": dedup["launched"],
            "attached_requests": dedup["attached"],
            "worker_pool_size": dedup["max_workers"],
            "retry_attempts": self._cfg.FETCH_MAX_ATTEMPTS,
            "retry_delay": self._cfg.FETCH_RETRY_DELAY,
            "api_timeout": self._cfg.FETCH_TIMEOUT,
            "rate_limit_status": self.rate_limit_status(),
        }


# ── 模块级别单例 ──────────────────────────────────────────
_stock_service: Optional[StockService] = None


def get_stock_service() -> StockService:
    global _stock_service
    if _stock_service is None:
        _stock_service = StockService()
    return _stock_service
