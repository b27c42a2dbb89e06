"""
本地大模型客户端（Ollama）
POST /api/generate 生成文本，GET /api/tags 列出模型。
"""

import logging
from typing import List, Optional

import httpx

from stockgenie.config import settings
from stockgenie.exceptions import LLMUnavailableError

logger = logging.getLogger(__name__)


class OllamaClient:
    """Ollama HTTP 客户端，失败统一抛出 LLMUnavailableError"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def generate(self, prompt: str) -> str:
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": settings.LLM_TEMPERATURE,
                "top_p": settings.LLM_TOP_P,
                "num_predict": settings.LLM_MAX_TOKENS,
            },
        }
        try:
            async with self._client() as client:
                resp = await client.post("/api/generate", json=body)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"调用 Ollama 失败: {exc}")
            raise LLMUnavailableError(f"调用 Ollama 失败: {exc}") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not text:
            raise LLMUnavailableError("Ollama 返回内容为空")
        logger.info(f"收到大模型响应，长度 {len(text)} 字符")
        return text

    async def list_models(self) -> List[str]:
        try:
            async with self._client(timeout=10) as client:
                resp = await client.get("/api/tags")
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"获取模型列表失败: {exc}")
            return []
        return [m.get("name", "") for m in data.get("models", []) if m.get("name")]

    async def is_available(self) -> bool:
        try:
            async with self._client(timeout=5) as client:
                resp = await client.get("/api/tags")
        except httpx.HTTPError as exc:
            logger.warning(f"大模型服务不可用: {exc}")
            return False
        return resp.status_code == 200 and "models" in resp.text


# ── 模块级别单例 ──────────────────────────────────────────
_llm: Optional[OllamaClient] = None


def get_llm_client() -> OllamaClient:
    global _llm
    if _llm is None:
        _llm = OllamaClient()
    return _llm
