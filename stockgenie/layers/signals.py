"""
交易信号生成
把最新的 SMA / RSI / MACD 取值折算为 BUY / SELL / HOLD，并按多数票给出综合信号。
"""

import logging
from decimal import Decimal
from typing import Dict, Optional, Sequence

from stockgenie.config import SignalConfig
from stockgenie.layers.analysis import macd, rsi, sma
from stockgenie.models.domain import Bar, Signal

logger = logging.getLogger(__name__)

RSI_OVERBOUGHT = Decimal(70)
RSI_OVERSOLD = Decimal(30)

SMA = "SMA"
RSI = "RSI"
MACD = "MACD"
OVERALL = "OVERALL"


def evaluate_signals(
    close: Decimal,
    sma_short: Optional[Decimal],
    sma_long: Optional[Decimal],
    rsi: Optional[Decimal],
    macd: Optional[Decimal],
) -> Dict[str, Signal]:
    """
    对给定指标值应用信号规则；值为 None 的指标族不出现在结果中

    Args:
        close: 最新收盘价
        sma_short: 短期 SMA
        sma_long: 长期 SMA
        rsi: 最新 RSI
        macd: 最新 MACD 线
    """
    signals: Dict[str, Signal] = {}

    if sma_short is not None and sma_long is not None:
        if sma_short > sma_long and close > sma_short:
            signals[SMA] = Signal.BUY
        elif sma_short < sma_long and close < sma_short:
            signals[SMA] = Signal.SELL
        else:
            signals[SMA] = Signal.HOLD

    if rsi is not None:
        if rsi > RSI_OVERBOUGHT:
            signals[RSI] = Signal.SELL
        elif rsi < RSI_OVERSOLD:
            signals[RSI] = Signal.BUY
        else:
            signals[RSI] = Signal.HOLD

    if macd is not None:
        signals[MACD] = Signal.BUY if macd > 0 else Signal.SELL

    buys = sum(1 for s in signals.values() if s == Signal.BUY)
    sells = sum(1 for s in signals.values() if s == Signal.SELL)
    if buys > sells:
        signals[OVERALL] = Signal.BUY
    elif sells > buys:
        signals[OVERALL] = Signal.SELL
    else:
        signals[OVERALL] = Signal.HOLD
    return signals


def _latest(samples) -> Optional[Decimal]:
    return samples[-1].value if samples else None


def generate_signals(
    symbol: str,
    bars: Sequence[Bar],
    config: SignalConfig = SignalConfig(),
) -> Dict[str, Signal]:
    """K 线数量少于 config.min_bars 时返回空字典"""
    if len(bars) < config.min_bars:
        logger.info(f"{symbol} 仅有 {len(bars)} 根 K 线，不足 {config.min_bars}，不生成信号")
        return {}

    return evaluate_signals(
        close=bars[-1].close,
        sma_short=_latest(sma(symbol, bars, config.sma_short)),
        sma_long=_latest(sma(symbol, bars, config.sma_long)),
        rsi=_latest(rsi(symbol, bars, config.rsi_period)),
        macd=_latest(macd(symbol, bars, config.ema_fast, config.ema_slow, config.macd_signal)),
    )
