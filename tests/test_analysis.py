"""
技术分析层单元测试

覆盖范围：
  - SMA / EMA / RSI / MACD / OBV 的 Decimal 计算
  - 指标名称解析与批量计算
  - 交易信号规则
  - 数据处理层（DataFrame 转换与衍生字段）
"""

from datetime import date, timedelta
from decimal import Decimal

import pandas as pd

from stockgenie.config import SignalConfig
from stockgenie.layers.analysis import (
    AVAILABLE_INDICATORS,
    _ema_multiplier,
    compute_indicators,
    ema,
    macd,
    obv,
    parse_indicator_name,
    rsi,
    sma,
)
from stockgenie.layers.processing import ProcessingLayer
from stockgenie.layers.signals import evaluate_signals, generate_signals
from stockgenie.models.domain import Bar, IndicatorType, Signal


# ─────────────────────────────────────────────────────────
# 辅助函数：按收盘价序列生成连续日 K 线
# ─────────────────────────────────────────────────────────

def _bars(closes, volumes=None, start: date = date(2024, 1, 1), source: str = "alpha-vantage"):
    volumes = volumes or [1000] * len(closes)
    return [
        Bar(
            symbol="AAPL",
            date=start + timedelta(days=i),
            open=c, high=c, low=c, close=c,
            volume=v,
            source=source,
        )
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]


def _rising(n: int, start: int = 100):
    return [Decimal(start + i) for i in range(n)]


# ─────────────────────────────────────────────────────────
# 1. 均线
# ─────────────────────────────────────────────────────────

class TestMovingAverages:
    def test_sma_short_input(self):
        assert sma("AAPL", _bars(_rising(19)), 20) == []

    def test_sma_constant_series(self):
        bars = _bars(["100.00"] * 25)
        samples = sma("AAPL", bars, 20)
        assert len(samples) == 6
        assert all(s.value == Decimal("100.0000") for s in samples)
        assert samples[0].date == bars[19].date
        assert samples[0].indicator_type == IndicatorType.SMA
        assert samples[0].period == 20

    def test_sma_values(self):
        samples = sma("AAPL", _bars([1, 2, 3, 4, 5]), 3)
        assert [s.value for s in samples] == [Decimal(2), Decimal(3), Decimal(4)]

    def test_sma_rounds_half_up(self):
        samples = sma("AAPL", _bars(["1.0001", "1.0002"]), 2)
        assert str(samples[0].value) == "1.0002"

    def test_ema_short_input(self):
        assert ema("AAPL", _bars(_rising(11)), 12) == []

    def test_ema_seed_equals_sma(self):
        bars = _bars(_rising(30))
        assert ema("AAPL", bars, 12)[0].value == sma("AAPL", bars, 12)[0].value
        assert ema("AAPL", bars, 12)[0].date == bars[11].date

    def test_ema_recurrence(self):
        samples = ema("AAPL", _bars([1, 2, 3, 4]), 3)
        # 乘数 2/(3+1) = 0.5；种子 2，下一值 4*0.5 + 2*0.5 = 3
        assert [s.value for s in samples] == [Decimal("2.0000"), Decimal("3.0000")]

    def test_ema_multiplier_precision(self):
        assert _ema_multiplier(12) == Decimal("0.153846")
        assert _ema_multiplier(26) == Decimal("0.074074")


# ─────────────────────────────────────────────────────────
# 2. RSI
# ─────────────────────────────────────────────────────────

class TestRSI:
    def test_requires_period_plus_one_bars(self):
        assert rsi("AAPL", _bars(_rising(14)), 14) == []
        assert len(rsi("AAPL", _bars(_rising(15)), 14)) == 1

    def test_all_gains_is_exactly_100(self):
        samples = rsi("AAPL", _bars(_rising(20)), 14)
        assert len(samples) == 6
        assert all(s.value == Decimal("100") for s in samples)

    def test_all_losses_is_zero(self):
        samples = rsi("AAPL", _bars(list(reversed(_rising(20)))), 14)
        assert all(s.value == Decimal("0") for s in samples)

    def test_alternating_series_is_fifty(self):
        closes = [Decimal(100 + (i % 2)) for i in range(15)]
        samples = rsi("AAPL", _bars(closes), 14)
        assert samples[0].value == Decimal("50.0000")

    def test_intermediate_ratio_rounding(self):
        # avgGain 0.5, avgLoss 1.5：rs = 0.3333，100/1.3333 = 75.0019
        samples = rsi("AAPL", _bars([10, 11, 8]), 2)
        assert samples[0].value == Decimal("24.9981")

    def test_bounded(self):
        closes = [Decimal(100) + Decimal((i * 7) % 11) - Decimal((i * 3) % 5) for i in range(60)]
        for s in rsi("AAPL", _bars(closes), 14):
            assert Decimal(0) <= s.value <= Decimal(100)


# ─────────────────────────────────────────────────────────
# 3. MACD / OBV
# ─────────────────────────────────────────────────────────

class TestMACD:
    def test_short_input(self):
        assert macd("AAPL", _bars(_rising(25))) == []

    def test_alignment_and_signal_line(self):
        bars = _bars(_rising(40))
        samples = macd("AAPL", bars)
        assert len(samples) == 40 - 26 + 1
        assert samples[0].date == bars[25].date
        assert all(s.signal is None and s.histogram is None for s in samples[:8])
        for s in samples[8:]:
            assert s.signal is not None
            assert s.histogram == s.value - s.signal
        assert samples[0].metadata == "12,26,9"
        assert samples[0].period == 12

    def test_rising_series_is_positive(self):
        samples = macd("AAPL", _bars(_rising(40)))
        assert all(s.value > 0 for s in samples)

    def test_constant_series_is_zero(self):
        samples = macd("AAPL", _bars(["50"] * 40))
        assert all(s.value == 0 for s in samples)
        assert samples[-1].histogram == 0


class TestOBV:
    def test_strictly_increasing_is_cumulative_volume(self):
        samples = obv("AAPL", _bars([1, 2, 3, 4], volumes=[10, 20, 30, 40]))
        assert [s.value for s in samples] == [Decimal(20), Decimal(50), Decimal(90)]
        assert samples[0].indicator_type == IndicatorType.OBV

    def test_non_decreasing_closes(self):
        samples = obv("AAPL", _bars([1, 1, 2, 2, 3], volumes=[5, 6, 7, 8, 9]))
        values = [s.value for s in samples]
        assert values == sorted(values)
        assert values == [Decimal(0), Decimal(7), Decimal(7), Decimal(16)]

    def test_falling_close_subtracts(self):
        samples = obv("AAPL", _bars([3, 2], volumes=[1, 4]))
        assert samples[0].value == Decimal(-4)

    def test_short_input(self):
        assert obv("AAPL", _bars([1])) == []


# ─────────────────────────────────────────────────────────
# 4. 按名称计算
# ─────────────────────────────────────────────────────────

class TestIndicatorNames:
    def test_parse(self):
        assert parse_indicator_name("SMA_20") == (IndicatorType.SMA, 20)
        assert parse_indicator_name("ema_26") == (IndicatorType.EMA, 26)
        assert parse_indicator_name("RSI") == (IndicatorType.RSI, 14)
        assert parse_indicator_name("MACD") == (IndicatorType.MACD, 12)
        assert parse_indicator_name("OBV") == (IndicatorType.OBV, 1)

    def test_parse_rejects_unknown(self):
        assert parse_indicator_name("BOLL_20") is None
        assert parse_indicator_name("SMA_x") is None
        assert parse_indicator_name("SMA_0") is None
        assert parse_indicator_name("MACD_5") is None

    def test_compute_all_by_default(self):
        result = compute_indicators("AAPL", _bars(_rising(60)))
        assert set(result) == set(AVAILABLE_INDICATORS)
        assert len(result["SMA_50"]) == 11
        assert len(result["OBV"]) == 59

    def test_unknown_names_skipped(self):
        result = compute_indicators("AAPL", _bars(_rising(30)), ["sma_20", "KDJ"])
        assert list(result) == ["SMA_20"]


# ─────────────────────────────────────────────────────────
# 5. 交易信号
# ─────────────────────────────────────────────────────────

class TestSignals:
    def test_bullish_setup(self):
        signals = evaluate_signals(
            close=Decimal("110"),
            sma_short=Decimal("105"),
            sma_long=Decimal("100"),
            rsi=Decimal("45"),
            macd=Decimal("1.5"),
        )
        assert signals == {
            "SMA": Signal.BUY,
            "RSI": Signal.HOLD,
            "MACD": Signal.BUY,
            "OVERALL": Signal.BUY,
        }

    def test_bearish_setup(self):
        signals = evaluate_signals(
            Decimal("90"), Decimal("95"), Decimal("100"), Decimal("75"), Decimal("-1")
        )
        assert set(signals.values()) == {Signal.SELL}

    def test_tie_is_hold(self):
        signals = evaluate_signals(
            Decimal("101"), Decimal("105"), Decimal("100"), Decimal("25"), Decimal("-0.5")
        )
        assert signals["SMA"] == Signal.HOLD
        assert signals["RSI"] == Signal.BUY
        assert signals["MACD"] == Signal.SELL
        assert signals["OVERALL"] == Signal.HOLD

    def test_zero_macd_is_sell(self):
        assert evaluate_signals(Decimal(1), None, None, None, Decimal(0))["MACD"] == Signal.SELL

    def test_missing_families_omitted(self):
        signals = evaluate_signals(Decimal(100), None, None, Decimal(50), None)
        assert signals == {"RSI": Signal.HOLD, "OVERALL": Signal.HOLD}

    def test_too_few_bars(self):
        assert generate_signals("AAPL", _bars(_rising(49))) == {}

    def test_rising_market(self):
        signals = generate_signals("AAPL", _bars(_rising(60)))
        assert signals["SMA"] == Signal.BUY
        assert signals["RSI"] == Signal.SELL
        assert signals["MACD"] == Signal.BUY
        assert signals["OVERALL"] == Signal.BUY

    def test_custom_config(self):
        config = SignalConfig(sma_short=5, sma_long=10, min_bars=12)
        signals = generate_signals("AAPL", _bars(_rising(12)), config)
        # 12 根不足以计算 RSI(14) 与 MACD(26)
        assert signals == {"SMA": Signal.BUY, "OVERALL": Signal.BUY}


# ─────────────────────────────────────────────────────────
# 6. 数据处理层
# ─────────────────────────────────────────────────────────

class TestProcessingLayer:
    def setup_method(self):
        self.proc = ProcessingLayer()

    def test_empty(self):
        df = self.proc.bars_to_frame([])
        assert df.empty
        assert "close" in df.columns
        assert self.proc.to_records(df) == []

    def test_frame_sorted(self):
        bars = _bars([1, 2, 3])
        df = self.proc.bars_to_frame(list(reversed(bars)))
        assert list(df["date"]) == ["2024-01-01", "2024-01-02", "2024-01-03"]

    def test_add_basic_metrics(self):
        df = self.proc.add_basic_metrics(self.proc.bars_to_frame(_bars([10, 11, 9.9])))
        assert "change" in df.columns
        assert "pct_chg" in df.columns
        assert "amplitude" in df.columns
        assert pd.isna(df["change"].iloc[0])
        assert df["change"].iloc[1] == 1.0
        assert df["pct_chg"].iloc[1] == 10.0

    def test_to_records_replaces_nan(self):
        df = self.proc.add_basic_metrics(self.proc.bars_to_frame(_bars([10, 11])))
        records = self.proc.to_records(df)
        assert records[0]["change"] is None
        assert records[1]["close"] == 11.0
        assert records[1]["source"] == "alpha-vantage"

    def test_source_summary(self):
        bars = _bars([1, 2]) + _bars([3], start=date(2024, 2, 1), source="mock")
        assert self.proc.source_summary(bars) == {"alpha-vantage": 2, "mock": 1}

    def test_recent_table(self):
        table = self.proc.recent_table(_bars(_rising(15)), rows=10)
        assert "2024-01-15" in table
        assert "2024-01-05" not in table
