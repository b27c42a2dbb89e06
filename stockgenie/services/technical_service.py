"""
技术分析服务
整合数据获取 + 指标计算 + 信号生成，提供技术分析的高级接口
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from stockgenie.config import StockGenieSettings, settings
from stockgenie.layers.analysis import AVAILABLE_INDICATORS, compute_indicators
from stockgenie.layers.cache import get_cache_layer
from stockgenie.layers.processing import get_processing_layer
from stockgenie.layers.signals import generate_signals
from stockgenie.layers.store import BarStore, get_bar_store
from stockgenie.models.domain import IndicatorSample
from stockgenie.services.stock_service import StockService, get_stock_service

logger = logging.getLogger(__name__)

_TECHNICAL_CACHE_NS = "technical"
DEFAULT_DAYS = 120


def _fmt(value) -> Optional[str]:
    return None if value is None else str(value)


def sample_to_dict(sample: IndicatorSample) -> Dict[str, Any]:
    return {
        "date": sample.date.isoformat(),
        "value": _fmt(sample.value),
        "signal": _fmt(sample.signal),
        "histogram": _fmt(sample.histogram),
        "period": sample.period,
    }


class TechnicalService:
    """技术分析服务"""

    def __init__(
        self,
        stocks: Optional[StockService] = None,
        store: Optional[BarStore] = None,
        cfg: Optional[StockGenieSettings] = None,
    ):
        self._stocks = stocks or get_stock_service()
        self._store = store or get_bar_store()
        self._cfg = cfg or settings
        self._cache = get_cache_layer()
        self._proc = get_processing_layer()

    def available_indicators(self) -> Dict[str, Any]:
        return {
            "available_indicators": list(AVAILABLE_INDICATORS),
            "descriptions": dict(AVAILABLE_INDICATORS),
        }

    async def get_indicators(
        self,
        symbol: str,
        days: int = DEFAULT_DAYS,
        names: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        计算指定股票最近 days 天的技术指标

        Returns:
            {
                "symbol": "...",
                "latest": { "SMA_20": {...}, "RSI_14": {...}, ... },
                "counts": { "SMA_20": 81, ... },
                "sources": { "alpha-vantage": 100 },
                "synthetic": false
            }
        """
        symbol = symbol.strip().upper()
        selected: List[str] = [n.strip().upper() for n in names] if names else list(AVAILABLE_INDICATORS)
        parts = (symbol, str(days), ",".join(sorted(selected)))

        cached = await self._cache.get(_TECHNICAL_CACHE_NS, *parts)
        if cached is not None:
            return cached

        bars = await self._stocks.get_bars_for_days(symbol, days)
        results = compute_indicators(symbol, bars, selected)
        synthetic = any(b.is_synthetic for b in bars)

        summary = {
            "symbol": symbol,
            "days": days,
            "bars": len(bars),
            "sources": self._proc.source_summary(bars),
            "synthetic": synthetic,
            "latest": {
                name: sample_to_dict(samples[-1]) if samples else None
                for name, samples in results.items()
            },
            "counts": {name: len(samples) for name, samples in results.items()},
        }

        # 仅真实数据计算出的指标落库 / 缓存
        if bars and not synthetic:
            all_samples = [s for samples in results.values() for s in samples]
            try:
                await self._store.upsert_indicator_samples(all_samples)
            except Exception as exc:
                logger.error(f"技术指标落库失败 {symbol}: {exc}")
            await self._cache.set(
                summary, _TECHNICAL_CACHE_NS, *parts,
                ttl=self._cfg.TECHNICAL_ANALYSIS_CACHE_TTL,
            )
        return summary

    async def get_signals(self, symbol: str, days: int = DEFAULT_DAYS) -> Dict[str, Any]:
        symbol = symbol.strip().upper()
        bars = await self._stocks.get_bars_for_days(symbol, days)
        config = self._cfg.signal_config()
        signals = generate_signals(symbol, bars, config)
        return {
            "symbol": symbol,
            "days": days,
            "bars": len(bars),
            "min_bars": config.min_bars,
            "synthetic": any(b.is_synthetic for b in bars),
            "signals": {family: signal.value for family, signal in signals.items()},
        }


# ── 模块级别单例 ──────────────────────────────────────────
_technical_service: Optional[TechnicalService] = None


def get_technical_service() -> TechnicalService:
    global _technical_service
    if _technical_service is None:
        _technical_service = TechnicalService()
    return _technical_service
