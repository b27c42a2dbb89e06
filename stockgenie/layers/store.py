"""
K 线存储
对获取层而言存储只是一个键值仓库：查询区间 / 覆盖判断 / 按 (symbol, date) 写入。
MongoDB 可用时落库，否则降级为进程内存储。
"""

import datetime as dt
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from pymongo import ASCENDING, UpdateOne

from stockgenie.db import get_mongo_db
from stockgenie.models.domain import Bar, IndicatorSample, IndicatorType

logger = logging.getLogger(__name__)

# 相邻两条已存 K 线之间允许的最大自然日间隔（周末 + 节假日）
MAX_TRADING_GAP_DAYS = 4

_BARS = "stock_data"
_INDICATORS = "technical_analysis"


class BarStore(Protocol):
    async def has_range(self, symbol: str, start: dt.date, end: dt.date) -> bool: ...

    async def get_range(self, symbol: str, start: dt.date, end: dt.date) -> List[Bar]: ...

    async def upsert_bars(self, bars: Sequence[Bar]) -> int: ...

    async def upsert_indicator_samples(self, samples: Sequence[IndicatorSample]) -> int: ...


# ── 覆盖判断（缺口检测） ───────────────────────────────────

def _first_weekday_on_or_after(day: dt.date) -> dt.date:
    while day.weekday() >= 5:
        day += dt.timedelta(days=1)
    return day


def _last_weekday_on_or_before(day: dt.date) -> dt.date:
    while day.weekday() >= 5:
        day -= dt.timedelta(days=1)
    return day


def covers_range(dates: Iterable[dt.date], start: dt.date, end: dt.date) -> bool:
    """
    已存日期是否完整覆盖 [start, end]

    首尾需覆盖区间内的首个 / 最后一个工作日，中间不允许出现超过
    MAX_TRADING_GAP_DAYS 个自然日的空洞。区间内没有工作日时视为未覆盖。
    """
    first_needed = _first_weekday_on_or_after(start)
    last_needed = _last_weekday_on_or_before(end)
    if first_needed > last_needed:
        return False
    days = sorted(d for d in set(dates) if start <= d <= end)
    if not days or days[0] > first_needed or days[-1] < last_needed:
        return False
    for prev, cur in zip(days, days[1:]):
        if (cur - prev).days > MAX_TRADING_GAP_DAYS:
            return False
    return True


# ── 内存实现 ──────────────────────────────────────────────

class InMemoryBarStore:
    """进程内存储，按 (symbol, date) / 指标键去重"""

    def __init__(self):
        self._bars: Dict[Tuple[str, dt.date], Bar] = {}
        self._samples: Dict[Tuple[str, dt.date, IndicatorType, int], IndicatorSample] = {}

    async def has_range(self, symbol: str, start: dt.date, end: dt.date) -> bool:
        symbol = symbol.upper()
        return covers_range(
            (d for (s, d) in self._bars if s == symbol), start, end
        )

    async def get_range(self, symbol: str, start: dt.date, end: dt.date) -> List[Bar]:
        symbol = symbol.upper()
        bars = [
            bar for (s, d), bar in self._bars.items()
            if s == symbol and start <= d <= end
        ]
        return sorted(bars, key=lambda b: b.date)

    async def upsert_bars(self, bars: Sequence[Bar]) -> int:
        for bar in bars:
            self._bars[bar.key] = bar
        return len(bars)

    async def upsert_indicator_samples(self, samples: Sequence[IndicatorSample]) -> int:
        for sample in samples:
            self._samples[sample.key] = sample
        return len(samples)

    def indicator_samples(
        self, symbol: str, indicator_type: Optional[IndicatorType] = None
    ) -> List[IndicatorSample]:
        symbol = symbol.upper()
        samples = [
            s for s in self._samples.values()
            if s.symbol == symbol and (indicator_type is None or s.indicator_type == indicator_type)
        ]
        return sorted(samples, key=lambda s: (s.date, s.indicator_type.value, s.period))


# ── MongoDB 实现 ──────────────────────────────────────────

def _date_key(day: dt.date) -> str:
    return day.isoformat()


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _bar_to_doc(bar: Bar) -> dict:
    return {
        "symbol": bar.symbol,
        "date": _date_key(bar.date),
        "open": _dec(bar.open),
        "high": _dec(bar.high),
        "low": _dec(bar.low),
        "close": _dec(bar.close),
        "volume": bar.volume,
        "adjusted_close": _dec(bar.adjusted_close),
        "source": bar.source,
    }


def _doc_to_bar(doc: dict) -> Bar:
    return Bar(
        symbol=doc["symbol"],
        date=dt.date.fromisoformat(doc["date"]),
        open=doc["open"],
        high=doc["high"],
        low=doc["low"],
        close=doc["close"],
        volume=int(doc["volume"]),
        adjusted_close=doc.get("adjusted_close"),
        source=doc["source"],
    )


def _sample_to_doc(sample: IndicatorSample) -> dict:
    return {
        "symbol": sample.symbol,
        "date": _date_key(sample.date),
        "indicator_type": sample.indicator_type.value,
        "period": sample.period,
        "value": _dec(sample.value),
        "signal": _dec(sample.signal),
        "histogram": _dec(sample.histogram),
        "metadata": sample.metadata,
    }


class MongoBarStore:
    """基于 motor 的 MongoDB 存储，日期以 ISO 字符串、价格以十进制字符串保存"""

    def __init__(self, db):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[_BARS].create_index(
            [("symbol", ASCENDING), ("date", ASCENDING)], unique=True
        )
        await self._db[_INDICATORS].create_index(
            [("symbol", ASCENDING), ("date", ASCENDING),
             ("indicator_type", ASCENDING), ("period", ASCENDING)],
            unique=True,
        )

    async def _dates(self, symbol: str, start: dt.date, end: dt.date) -> List[dt.date]:
        cursor = self._db[_BARS].find(
            {"symbol": symbol.upper(), "date": {"$gte": _date_key(start), "$lte": _date_key(end)}},
            {"date": 1, "_id": 0},
        )
        return [dt.date.fromisoformat(doc["date"]) async for doc in cursor]

    async def has_range(self, symbol: str, start: dt.date, end: dt.date) -> bool:
        return covers_range(await self._dates(symbol, start, end), start, end)

    async def get_range(self, symbol: str, start: dt.date, end: dt.date) -> List[Bar]:
        cursor = self._db[_BARS].find(
            {"symbol": symbol.upper(), "date": {"$gte": _date_key(start), "$lte": _date_key(end)}},
            {"_id": 0},
        ).sort("date", ASCENDING)
        return [_doc_to_bar(doc) async for doc in cursor]

    async def upsert_bars(self, bars: Sequence[Bar]) -> int:
        if not bars:
            return 0
        ops = [
            UpdateOne(
                {"symbol": bar.symbol, "date": _date_key(bar.date)},
                {"$set": _bar_to_doc(bar)},
                upsert=True,
            )
            for bar in bars
        ]
        await self._db[_BARS].bulk_write(ops, ordered=False)
        logger.info(f"写入 {len(ops)} 条 K 线记录")
        return len(ops)

    async def upsert_indicator_samples(self, samples: Sequence[IndicatorSample]) -> int:
        if not samples:
            return 0
        ops = [
            UpdateOne(
                {
                    "symbol": s.symbol,
                    "date": _date_key(s.date),
                    "indicator_type": s.indicator_type.value,
                    "period": s.period,
                },
                {"$set": _sample_to_doc(s)},
                upsert=True,
            )
            for s in samples
        ]
        await self._db[_INDICATORS].bulk_write(ops, ordered=False)
        logger.info(f"写入 {len(ops)} 条技术指标记录")
        return len(ops)


# ── 模块级别单例 ──────────────────────────────────────────
_store: Optional[BarStore] = None


def get_bar_store() -> BarStore:
    global _store
    if _store is None:
        db = get_mongo_db()
        if db is not None:
            _store = MongoBarStore(db)
        else:
            logger.warning("MongoDB 不可用，K 线存储降级为进程内存")
            _store = InMemoryBarStore()
    return _store
