"""
Layer 3 – 数据处理层
把 K 线序列整理为 DataFrame，追加展示用的衍生字段，再转换为接口返回的记录列表。
这里的浮点运算只服务于展示，指标计算仍以 Decimal 为准。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from stockgenie.models.domain import Bar

logger = logging.getLogger(__name__)

COLUMNS = ["date", "open", "high", "low", "close", "volume", "adjusted_close", "source"]


class ProcessingLayer:
    """数据处理层：K 线 → DataFrame → 记录"""

    def bars_to_frame(self, bars: Sequence[Bar]) -> pd.DataFrame:
        """
        将 K 线列表转换为按日期升序的 DataFrame

        标准列：date, open, high, low, close, volume, adjusted_close, source
        """
        if not bars:
            return pd.DataFrame(columns=COLUMNS)

        df = pd.DataFrame([
            {
                "date": b.date.isoformat(),
                "open": float(b.open),
                "high": float(b.high),
                "low": float(b.low),
                "close": float(b.close),
                "volume": b.volume,
                "adjusted_close": float(b.adjusted_close),
                "source": b.source,
            }
            for b in bars
        ], columns=COLUMNS)

        # 同一日期只保留最后一条
        df = df.drop_duplicates(subset=["date"], keep="last")
        return df.sort_values("date").reset_index(drop=True)

    def add_basic_metrics(self, df: pd.DataFrame) -> pd.DataFrame:
        """添加基础衍生指标（涨跌额、涨跌幅、振幅）"""
        if df.empty or "close" not in df.columns:
            return df
        df = df.copy()
        df["change"] = df["close"].diff().round(4)
        df["pct_chg"] = (df["close"].pct_change() * 100).round(4)
        prev_close = df["close"].shift(1)
        denominator = prev_close.where(prev_close.notna() & (prev_close != 0), df["close"])
        df["amplitude"] = ((df["high"] - df["low"]) / denominator * 100).round(4)
        return df

    def to_records(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """DataFrame 转换为字典列表，NaN 转为 None"""
        if df.empty:
            return []
        cleaned = df.astype(object).where(pd.notna(df), None)
        return cleaned.to_dict(orient="records")

    def source_summary(self, bars: Sequence[Bar]) -> Dict[str, int]:
        """各数据来源的 K 线数量"""
        summary: Dict[str, int] = {}
        for bar in bars:
            summary[bar.source] = summary.get(bar.source, 0) + 1
        return summary

    def recent_table(self, bars: Sequence[Bar], rows: int = 10) -> str:
        """最近若干根 K 线的文本表格（用于大模型提示词）"""
        df = self.bars_to_frame(bars)
        if df.empty:
            return "No stock data available"
        df = df.tail(rows)[["date", "open", "high", "low", "close", "volume"]]
        return df.to_string(index=False)


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
