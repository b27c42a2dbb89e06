"""
大模型分析服务
用最近行情、技术指标与交易信号构造提示词，交给本地大模型生成文字分析，
并从回复中提取 BUY / SELL / HOLD 建议与置信度。
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from stockgenie.config import StockGenieSettings, settings
from stockgenie.exceptions import LLMUnavailableError
from stockgenie.layers.cache import get_cache_layer
from stockgenie.layers.llm import OllamaClient, get_llm_client
from stockgenie.layers.processing import get_processing_layer
from stockgenie.services.stock_service import StockService, get_stock_service
from stockgenie.services.technical_service import TechnicalService, get_technical_service

logger = logging.getLogger(__name__)

_LLM_CACHE_NS = "llm"
PROMPT_BARS = 10

ANALYSIS_TYPES = ("stock-analysis", "sentiment-analysis", "technical-analysis", "custom")

_PROMPTS = {
    "stock-analysis": (
        "You are a financial analyst. Analyze the following stock data for {symbol}:\n\n"
        "Stock Data:\n{stock_data}\n\n"
        "Technical Indicators:\n{indicators}\n\n"
        "Provide analysis on:\n"
        "1. Price trends and patterns\n"
        "2. Technical signal interpretation\n"
        "3. Risk assessment\n"
        "4. Buy/Sell/Hold recommendation with confidence percentage (1-100) and reasoning\n\n"
        "Keep response concise and actionable. Focus on the provided data only."
    ),
    "sentiment-analysis": (
        "As a specialized financial analyst, evaluate this stock data for {symbol}:\n\n"
        "{stock_data}\n\n"
        "Focus on:\n"
        "- Market sentiment indicators\n"
        "- Volume analysis\n"
        "- Price momentum\n"
        "- Risk factors\n"
        "- Investment recommendation\n\n"
        "Provide a sentiment-based analysis."
    ),
    "technical-analysis": (
        "Analyze the following technical indicators for {symbol}:\n\n"
        "{indicators}\n\n"
        "Provide:\n"
        "1. Signal interpretation\n"
        "2. Trend confirmation\n"
        "3. Entry/exit points\n"
        "4. Risk levels\n"
        "5. Trading recommendation"
    ),
    "custom": "{custom_prompt}\n\nStock Data:\n{stock_data}\n\nTechnical Indicators:\n{indicators}",
}

_CONFIDENCE_PATTERN = re.compile(r"(\d{1,3})\s*%")
_CONFIDENCE_PHRASES = (
    (("high confidence", "very confident"), 85),
    (("medium confidence", "moderate"), 65),
    (("low confidence", "uncertain"), 35),
)
DEFAULT_CONFIDENCE = 50


# ── 回复解析 ──────────────────────────────────────────────

def extract_recommendation(text: str) -> str:
    upper = text.upper()
    if "BUY" in upper:
        return "BUY"
    if "SELL" in upper:
        return "SELL"
    return "HOLD"


def extract_confidence(text: str) -> int:
    """优先取第一个百分数，其次按措辞估计，默认 50"""
    match = _CONFIDENCE_PATTERN.search(text)
    if match and 0 <= int(match.group(1)) <= 100:
        return int(match.group(1))
    lower = text.lower()
    for phrases, score in _CONFIDENCE_PHRASES:
        if any(p in lower for p in phrases):
            return score
    return DEFAULT_CONFIDENCE


def format_indicators(latest: Dict[str, Any], signals: Dict[str, str]) -> str:
    lines: List[str] = []
    for name, sample in latest.items():
        if sample:
            lines.append(f"- {name}: {sample['value']}")
    for family, signal in signals.items():
        lines.append(f"- {family} signal: {signal}")
    return "\n".join(lines) if lines else "No technical indicators available"


class NarrativeService:
    """大模型分析服务"""

    def __init__(
        self,
        llm: Optional[OllamaClient] = None,
        stocks: Optional[StockService] = None,
        technical: Optional[TechnicalService] = None,
        cfg: Optional[StockGenieSettings] = None,
    ):
        self._llm = llm or get_llm_client()
        self._stocks = stocks or get_stock_service()
        self._technical = technical or get_technical_service()
        self._cfg = cfg or settings
        self._cache = get_cache_layer()
        self._proc = get_processing_layer()

    async def build_prompt(
        self,
        symbol: str,
        analysis_type: str,
        days: int,
        include_technical: bool,
        custom_prompt: str = "",
    ) -> str:
        bars = await self._stocks.get_bars_for_days(symbol, days)
        stock_data = self._proc.recent_table(bars, rows=PROMPT_BARS)
        indicators = "No technical indicators available"
        if include_technical:
            technical = await self._technical.get_indicators(symbol, days)
            signals = await self._technical.get_signals(symbol, days)
            indicators = format_indicators(technical["latest"], signals["signals"])
        template = _PROMPTS.get(analysis_type, _PROMPTS["stock-analysis"])
        return template.format(
            symbol=symbol,
            stock_data=stock_data,
            indicators=indicators,
            custom_prompt=custom_prompt,
        )

    async def analyze(
        self,
        symbol: str,
        analysis_type: str = "stock-analysis",
        days: int = 30,
        include_technical: bool = True,
        custom_prompt: str = "",
    ) -> Dict[str, Any]:
        """
        生成大模型分析；大模型不可用时返回 HOLD / 0 的失败结果，不抛出异常

        Args:
            symbol: 股票代码
            analysis_type: stock-analysis / sentiment-analysis / technical-analysis / custom
            days: 参与分析的自然日数
            include_technical: 是否附带技术指标与信号
            custom_prompt: custom 类型的自定义提示词
        """
        symbol = symbol.strip().upper()
        parts = (symbol, analysis_type, str(days), str(include_technical), custom_prompt)
        cached = await self._cache.get(_LLM_CACHE_NS, *parts)
        if cached is not None:
            return cached

        now = datetime.now(tz=timezone.utc).isoformat()
        try:
            prompt = await self.build_prompt(symbol, analysis_type, days, include_technical, custom_prompt)
            text = await self._llm.generate(prompt)
        except LLMUnavailableError as exc:
            logger.error(f"{symbol} 大模型分析失败: {exc}")
            return {
                "symbol": symbol,
                "analysis_type": analysis_type,
                "status": "error",
                "analysis": "Analysis failed: " + str(exc),
                "recommendation": "HOLD",
                "confidence": 0,
                "model": self._llm.model,
                "timestamp": now,
            }

        result = {
            "symbol": symbol,
            "analysis_type": analysis_type,
            "status": "success",
            "analysis": text,
            "recommendation": extract_recommendation(text),
            "confidence": extract_confidence(text),
            "model": self._llm.model,
            "timestamp": now,
        }
        await self._cache.set(result, _LLM_CACHE_NS, *parts, ttl=self._cfg.LLM_ANALYSIS_CACHE_TTL)
        return result

    async def models(self) -> List[str]:
        return await self._llm.list_models()

    async def available(self) -> Dict[str, Any]:
        return {
            "available": await self._llm.is_available(),
            "base_url": self._llm.base_url,
            "model": self._llm.model,
        }


# ── 模块级别单例 ──────────────────────────────────────────
_narrative_service: Optional[NarrativeService] = None


def get_narrative_service() -> NarrativeService:
    global _narrative_service
    if _narrative_service is None:
        _narrative_service = NarrativeService()
    return _narrative_service
