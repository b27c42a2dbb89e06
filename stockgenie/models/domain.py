"""
领域模型
K 线（Bar）、技术指标样本（IndicatorSample）与交易信号（Signal）
"""

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PRICE_PLACES = Decimal("0.0001")

MOCK_SOURCE = "mock"


def quantize_price(value: Any) -> Decimal:
    """价格统一保留 4 位小数（四舍五入）"""
    return Decimal(str(value)).quantize(PRICE_PLACES, rounding=ROUND_HALF_UP)


class IndicatorType(str, Enum):
    SMA = "SMA"
    EMA = "EMA"
    RSI = "RSI"
    MACD = "MACD"
    OBV = "OBV"


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Bar(BaseModel):
    """单个交易日的 OHLCV 数据，source 标记数据来源（提供商名称或 mock）"""

    model_config = ConfigDict(frozen=True)

    symbol: str
    date: dt.date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = Field(ge=0)
    adjusted_close: Decimal
    source: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _default_adjusted_close(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("adjusted_close") is None:
            data = dict(data)
            data["adjusted_close"] = data.get("close")
        return data

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("open", "high", "low", "close", "adjusted_close", mode="before")
    @classmethod
    def _quantize(cls, value: Any) -> Decimal:
        return quantize_price(value)

    @property
    def key(self) -> Tuple[str, dt.date]:
        return self.symbol, self.date

    @property
    def is_synthetic(self) -> bool:
        return self.source == MOCK_SOURCE

    def with_adjusted_close(self, value: Any) -> "Bar":
        """复权收盘价回填（K 线唯一允许变更的字段）"""
        return self.model_copy(update={"adjusted_close": quantize_price(value)})


class IndicatorSample(BaseModel):
    """单个技术指标取值，以 (symbol, date, indicator_type, period) 唯一确定"""

    model_config = ConfigDict(frozen=True)

    symbol: str
    date: dt.date
    indicator_type: IndicatorType
    period: int
    value: Decimal
    signal: Optional[Decimal] = None
    histogram: Optional[Decimal] = None
    metadata: Optional[str] = None

    @property
    def key(self) -> Tuple[str, dt.date, IndicatorType, int]:
        return self.symbol, self.date, self.indicator_type, self.period
