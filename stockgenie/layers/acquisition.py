"""
Layer 1 – 数据获取层
本地存储 → 覆盖判断 → 限流 / 去重 / 重试拉取 → 响应解析 → 落库 → 模拟数据兜底。

对调用方的承诺：永远返回按日期升序的 K 线序列，不因数据不可用而抛出异常；
Bar.source 是唯一的降级标记（真实提供商名称或 "mock"）。
"""

import datetime as dt
import hashlib
import json
import logging
import random
from decimal import Decimal
from typing import List, Optional

from stockgenie.exceptions import ConfigurationError, MalformedPayload
from stockgenie.layers.dedup import Deduplicator
from stockgenie.layers.fetcher import FetchRequest, RetryingFetcher, Success
from stockgenie.layers.provider import ProviderClient, ProviderQuery
from stockgenie.layers.store import BarStore
from stockgenie.models.domain import MOCK_SOURCE, Bar

logger = logging.getLogger(__name__)

# 提供商在响应体中报告错误 / 限流提示的字段
_ERROR_FIELDS = ("Error Message", "Note", "Information")
_SERIES_FIELD = "Time Series (Daily)"


def make_request_key(provider: str, symbol: str, query: ProviderQuery) -> str:
    """生成可复现的去重键"""
    raw = ":".join([provider, symbol.upper(), query.shape])
    return "fetch:" + hashlib.md5(raw.encode()).hexdigest()


# ── 响应解析 ──────────────────────────────────────────────

def parse_daily_series(payload: str, symbol: str, source: str) -> List[Bar]:
    """
    解析 Alpha Vantage TIME_SERIES_DAILY 响应

    Raises:
        MalformedPayload: 非 JSON、包含错误 / 提示字段、或缺少日线数据
    """
    if not payload or not payload.strip():
        raise MalformedPayload("响应为空")
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise MalformedPayload(f"响应不是合法 JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedPayload("响应结构异常")

    for field in _ERROR_FIELDS:
        if field in data:
            raise MalformedPayload(f"{field}: {data[field]}")

    series = data.get(_SERIES_FIELD)
    if not isinstance(series, dict) or not series:
        raise MalformedPayload(f"响应中没有 {_SERIES_FIELD}")

    bars: List[Bar] = []
    for day, row in series.items():
        try:
            bars.append(Bar(
                symbol=symbol,
                date=dt.date.fromisoformat(day),
                open=row["1. open"],
                high=row["2. high"],
                low=row["3. low"],
                close=row["4. close"],
                volume=int(Decimal(row["5. volume"])),
                source=source,
            ))
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            logger.warning(f"跳过无法解析的记录 {symbol} {day}: {exc}")
    if not bars:
        raise MalformedPayload("日线数据全部无法解析")
    bars.sort(key=lambda b: b.date)
    return bars


# ── 模拟数据 ──────────────────────────────────────────────

def generate_synthetic_bars(symbol: str, start: dt.date, end: dt.date) -> List[Bar]:
    """
    为 [start, end] 内每个自然日生成模拟 K 线（source="mock"）

    以 symbol + start 作为随机种子，相同参数得到相同序列；
    价格小幅连续漂移，high >= max(open, close)，low <= min(open, close)。
    """
    if end < start:
        return []
    seed = int(hashlib.md5(f"{symbol.upper()}:{start.isoformat()}".encode()).hexdigest()[:8], 16)
    rng = random.Random(seed)
    base = Decimal("150.00")
    bars: List[Bar] = []
    day = start
    index = 0
    while day <= end:
        drift = Decimal(index % 10 - 5) * Decimal("0.5")
        open_ = base + drift
        close = open_ + Decimal(str(round(rng.uniform(-2, 2), 4)))
        high = max(open_, close) + Decimal(str(round(rng.uniform(0, 2), 4)))
        low = min(open_, close) - Decimal(str(round(rng.uniform(0, 2), 4)))
        bars.append(Bar(
            symbol=symbol,
            date=day,
            open=open_,
            high=high,
            low=max(low, Decimal("0.01")),
            close=close,
            volume=1_000_000 + rng.randint(0, 500_000),
            source=MOCK_SOURCE,
        ))
        day += dt.timedelta(days=1)
        index += 1
    logger.info(f"生成 {len(bars)} 条 {symbol} 模拟数据")
    return bars


class AcquisitionPipeline:
    """数据获取管道：各协作者均通过构造函数注入"""

    def __init__(
        self,
        store: BarStore,
        client: Optional[ProviderClient],
        fetcher: Optional[RetryingFetcher],
        deduplicator: Deduplicator,
        query: ProviderQuery = ProviderQuery(),
    ):
        self._store = store
        self._client = client
        self._fetcher = fetcher
        self._dedup = deduplicator
        self._query = query

    @property
    def provider(self) -> Optional[str]:
        return self._client.name if self._client is not None else None

    async def get_bars(self, symbol: str, start: dt.date, end: dt.date) -> List[Bar]:
        """
        获取 [start, end]（含两端）的日线数据

        Args:
            symbol: 股票代码（大小写不敏感）
            start: 开始日期
            end: 结束日期
        """
        symbol = symbol.strip().upper()
        if end < start:
            return []

        stored = await self._read_store(symbol, start, end)
        if stored is not None:
            return stored

        try:
            self._ensure_provider()
        except ConfigurationError as exc:
            logger.warning(f"{exc}，{symbol} 使用模拟数据")
            return generate_synthetic_bars(symbol, start, end)

        key = make_request_key(self._client.name, symbol, self._query)
        request = FetchRequest(symbol=symbol, query=self._query)
        outcome = await self._dedup.run_deduped(key, lambda: self._fetcher.fetch(request))

        if not isinstance(outcome, Success):
            logger.error(
                f"{symbol} 拉取失败（{type(outcome).__name__}，{outcome.attempts} 次尝试）: "
                f"{outcome.cause}，使用模拟数据"
            )
            return generate_synthetic_bars(symbol, start, end)

        try:
            bars = parse_daily_series(outcome.payload, symbol, self._client.name)
        except MalformedPayload as exc:
            logger.error(f"{self._client.name} 返回错误内容 {symbol}: {exc}，使用模拟数据")
            return generate_synthetic_bars(symbol, start, end)

        try:
            await self._store.upsert_bars(bars)
        except Exception as exc:
            logger.error(f"K 线落库失败 {symbol}: {exc}")

        return [bar for bar in bars if start <= bar.date <= end]

    async def _read_store(self, symbol: str, start: dt.date, end: dt.date) -> Optional[List[Bar]]:
        """本地已完整覆盖时返回存储中的 K 线；未覆盖或存储不可用时返回 None"""
        try:
            if not await self._store.has_range(symbol, start, end):
                return None
            bars = await self._store.get_range(symbol, start, end)
        except Exception as exc:
            logger.warning(f"读取本地 K 线失败 {symbol}: {exc}，按未覆盖处理")
            return None
        logger.info(f"本地存储已覆盖 {symbol} {start} ~ {end}")
        return bars

    def _ensure_provider(self) -> None:
        if self._client is None or self._fetcher is None:
            raise ConfigurationError("未配置行情数据提供商")
        if not self._client.is_configured:
            raise ConfigurationError(f"{self._client.name} 未配置有效的 API Key")
