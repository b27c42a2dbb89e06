"""
Layer 4 – 技术分析层
基于 K 线序列计算 SMA、EMA、RSI、MACD、OBV。

全部运算使用 Decimal，结果保留 4 位小数（四舍五入）；
输入长度不足时返回空列表，从不抛出异常。
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from stockgenie.models.domain import PRICE_PLACES, Bar, IndicatorSample, IndicatorType

logger = logging.getLogger(__name__)

MULTIPLIER_PLACES = Decimal("0.000001")
HUNDRED = Decimal(100)

# 无周期后缀时使用的默认周期
DEFAULT_PERIODS = {
    IndicatorType.SMA: 20,
    IndicatorType.EMA: 12,
    IndicatorType.RSI: 14,
    IndicatorType.MACD: 12,
    IndicatorType.OBV: 1,
}

AVAILABLE_INDICATORS: Dict[str, str] = {
    "SMA_20": "Simple Moving Average (20 periods)",
    "SMA_50": "Simple Moving Average (50 periods)",
    "EMA_12": "Exponential Moving Average (12 periods)",
    "EMA_26": "Exponential Moving Average (26 periods)",
    "RSI_14": "Relative Strength Index (14 periods)",
    "MACD": "Moving Average Convergence Divergence",
    "OBV": "On-Balance Volume",
}


def _q(value: Decimal) -> Decimal:
    return value.quantize(PRICE_PLACES, rounding=ROUND_HALF_UP)


def _mean(values: Sequence[Decimal]) -> Decimal:
    return sum(values, Decimal(0)) / Decimal(len(values))


def _ema_multiplier(period: int) -> Decimal:
    return (Decimal(2) / Decimal(period + 1)).quantize(MULTIPLIER_PLACES, rounding=ROUND_HALF_UP)


def _ema_values(values: Sequence[Decimal], period: int) -> List[Decimal]:
    """对任意数值序列做 EMA，返回从第 period 个值起的结果（首值为前 period 个值的均值）"""
    if period <= 0 or len(values) < period:
        return []
    m = _ema_multiplier(period)
    prev = _q(_mean(values[:period]))
    result = [prev]
    for value in values[period:]:
        prev = _q(value * m + prev * (1 - m))
        result.append(prev)
    return result


def _sample(symbol: str, bar: Bar, kind: IndicatorType, period: int, value: Decimal, **extra) -> IndicatorSample:
    return IndicatorSample(
        symbol=symbol.upper(),
        date=bar.date,
        indicator_type=kind,
        period=period,
        value=value,
        **extra,
    )


# ── 均线 ──────────────────────────────────────────────

def sma(symbol: str, bars: Sequence[Bar], period: int) -> List[IndicatorSample]:
    """简单移动平均：第 period-1 根 K 线起每根一个样本"""
    if period <= 0 or len(bars) < period:
        return []
    closes = [b.close for b in bars]
    samples = []
    for i in range(period - 1, len(bars)):
        value = _q(_mean(closes[i - period + 1:i + 1]))
        samples.append(_sample(symbol, bars[i], IndicatorType.SMA, period, value))
    return samples


def ema(symbol: str, bars: Sequence[Bar], period: int) -> List[IndicatorSample]:
    """指数移动平均：乘数 2/(period+1)，以前 period 根收盘价的 SMA 作为种子"""
    values = _ema_values([b.close for b in bars], period)
    offset = period - 1
    return [
        _sample(symbol, bars[offset + i], IndicatorType.EMA, period, value)
        for i, value in enumerate(values)
    ]


# ── RSI ───────────────────────────────────────────────

def _rsi_value(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == 0:
        return _q(HUNDRED)
    # rs 与 100/(1+rs) 各自先保留 4 位再相减
    rs = _q(avg_gain / avg_loss)
    return _q(HUNDRED - _q(HUNDRED / (1 + rs)))


def rsi(symbol: str, bars: Sequence[Bar], period: int = 14) -> List[IndicatorSample]:
    """
    相对强弱指数（Wilder 平滑）

    需要至少 period + 1 根 K 线；第 period 根 K 线输出种子值，之后每根一个样本。
    平均损失为 0 时 RSI 恰为 100。
    """
    if period <= 0 or len(bars) < period + 1:
        return []
    deltas = [bars[i].close - bars[i - 1].close for i in range(1, len(bars))]
    gains = [d if d > 0 else Decimal(0) for d in deltas]
    losses = [-d if d < 0 else Decimal(0) for d in deltas]

    avg_gain = _q(_mean(gains[:period]))
    avg_loss = _q(_mean(losses[:period]))
    samples = [_sample(symbol, bars[period], IndicatorType.RSI, period, _rsi_value(avg_gain, avg_loss))]

    for i in range(period, len(deltas)):
        avg_gain = _q((avg_gain * (period - 1) + gains[i]) / period)
        avg_loss = _q((avg_loss * (period - 1) + losses[i]) / period)
        samples.append(
            _sample(symbol, bars[i + 1], IndicatorType.RSI, period, _rsi_value(avg_gain, avg_loss))
        )
    return samples


# ── MACD ──────────────────────────────────────────────

def macd(
    symbol: str,
    bars: Sequence[Bar],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> List[IndicatorSample]:
    """
    MACD 线 = EMA(fast) - EMA(slow)，按日期对齐，从第 slow 根 K 线起输出

    信号线为 MACD 线的 EMA(signal)，柱 = MACD - 信号线；
    信号线尚未形成时 signal / histogram 为 None。
    """
    if fast <= 0 or slow <= 0 or len(bars) < max(fast, slow):
        return []
    fast_by_date = {s.date: s.value for s in ema(symbol, bars, fast)}
    slow_samples = ema(symbol, bars, slow)
    bar_by_date = {b.date: b for b in bars}

    dates = [s.date for s in slow_samples if s.date in fast_by_date]
    slow_by_date = {s.date: s.value for s in slow_samples}
    line = [_q(fast_by_date[d] - slow_by_date[d]) for d in dates]
    signal_line = _ema_values(line, signal)
    lag = signal - 1

    metadata = f"{fast},{slow},{signal}"
    samples = []
    for i, (day, value) in enumerate(zip(dates, line)):
        sig = signal_line[i - lag] if signal_line and i >= lag else None
        samples.append(_sample(
            symbol, bar_by_date[day], IndicatorType.MACD, fast, value,
            signal=sig,
            histogram=None if sig is None else _q(value - sig),
            metadata=metadata,
        ))
    return samples


# ── OBV ───────────────────────────────────────────────

def obv(symbol: str, bars: Sequence[Bar]) -> List[IndicatorSample]:
    """能量潮：上涨累加成交量，下跌扣减，平盘不变；从第 1 根 K 线起输出"""
    if len(bars) < 2:
        return []
    running = 0
    samples = []
    for prev, cur in zip(bars, bars[1:]):
        if cur.close > prev.close:
            running += cur.volume
        elif cur.close < prev.close:
            running -= cur.volume
        samples.append(_sample(symbol, cur, IndicatorType.OBV, 1, Decimal(running)))
    return samples


# ── 按名称计算 ────────────────────────────────────────

def parse_indicator_name(name: str) -> Optional[Tuple[IndicatorType, int]]:
    """解析 SMA_20 / EMA_12 / RSI_14 / MACD / OBV，无法识别时返回 None"""
    head, _, tail = name.strip().upper().partition("_")
    try:
        kind = IndicatorType(head)
    except ValueError:
        return None
    if not tail:
        return kind, DEFAULT_PERIODS[kind]
    if kind in (IndicatorType.MACD, IndicatorType.OBV) or not tail.isdigit() or int(tail) <= 0:
        return None
    return kind, int(tail)


def compute_indicator(
    symbol: str,
    bars: Sequence[Bar],
    name: str,
    macd_slow: int = 26,
    macd_signal: int = 9,
) -> List[IndicatorSample]:
    parsed = parse_indicator_name(name)
    if parsed is None:
        logger.warning(f"未知技术指标: {name}")
        return []
    kind, period = parsed
    if kind == IndicatorType.SMA:
        return sma(symbol, bars, period)
    if kind == IndicatorType.EMA:
        return ema(symbol, bars, period)
    if kind == IndicatorType.RSI:
        return rsi(symbol, bars, period)
    if kind == IndicatorType.MACD:
        return macd(symbol, bars, period, macd_slow, macd_signal)
    return obv(symbol, bars)


def compute_indicators(
    symbol: str,
    bars: Sequence[Bar],
    names: Optional[Sequence[str]] = None,
) -> Dict[str, List[IndicatorSample]]:
    """批量计算指标，未指定时计算全部可用指标；未知名称记录日志后跳过"""
    result: Dict[str, List[IndicatorSample]] = {}
    for name in (names or list(AVAILABLE_INDICATORS)):
        key = name.strip().upper()
        if parse_indicator_name(key) is None:
            logger.warning(f"跳过未知技术指标: {name}")
            continue
        result[key] = compute_indicator(symbol, bars, key)
    return result
