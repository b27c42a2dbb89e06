"""
行情数据提供商客户端
封装 Alpha Vantage HTTP 接口，只负责发出请求并把失败归类为
ProviderRejection（4xx，不可重试）或 TransientFailure（超时 / 5xx / 网络故障）。
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import httpx

from stockgenie.config import ProviderConfig
from stockgenie.exceptions import ConfigurationError, ProviderRejection, TransientFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderQuery:
    """请求形态（决定去重键）"""

    function: str = "TIME_SERIES_DAILY"
    outputsize: str = "full"

    @property
    def shape(self) -> str:
        return f"{self.function}:{self.outputsize}"


class ProviderClient(Protocol):
    name: str

    @property
    def is_configured(self) -> bool:
        """凭证是否可用"""

    async def raw_fetch(self, symbol: str, query: ProviderQuery) -> str:
        """返回原始响应文本，失败时抛出 ProviderRejection / TransientFailure"""


class AlphaVantageClient:
    """Alpha Vantage 日线接口客户端"""

    name = "alpha-vantage"

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config = config
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self._config.has_credentials

    def _params(self, symbol: str, query: ProviderQuery) -> Dict[str, str]:
        return {
            "function": query.function,
            "symbol": symbol,
            "outputsize": query.outputsize,
            "apikey": self._config.api_key,
        }

    async def raw_fetch(self, symbol: str, query: ProviderQuery) -> str:
        if not self.is_configured:
            raise ConfigurationError(f"{self.name} 未配置有效的 API Key")
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    self._config.base_url, params=self._params(symbol, query)
                )
        except httpx.TimeoutException as exc:
            raise TransientFailure(f"请求超时: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientFailure(f"网络错误: {exc}") from exc

        status = response.status_code
        if 400 <= status < 500:
            raise ProviderRejection(f"HTTP {status}: {response.text[:200]}", status_code=status)
        if status >= 500:
            raise TransientFailure(f"HTTP {status}: {response.text[:200]}", status_code=status)
        return response.text


def build_provider_client(config: ProviderConfig) -> Optional[ProviderClient]:
    """根据配置构造客户端；暂无实现的提供商返回 None（调用方将降级为模拟数据）"""
    if config.name == "alpha-vantage":
        return AlphaVantageClient(config)
    logger.warning(f"不支持的数据提供商: {config.name}")
    return None
