"""
异常体系
所有业务异常均派生自 StockGenieError，调用方可统一捕获。

数据获取相关异常只在获取层内部流转：
管道对调用方永远返回 K 线序列（真实或模拟），不会因数据不可用而抛出。
"""

from typing import Optional


class StockGenieError(Exception):
    """业务异常基类"""


class ConfigurationError(StockGenieError):
    """数据提供商凭证缺失或为占位值（如 demo）"""


class RateLimitExceeded(StockGenieError):
    """本地限流器拒绝调用，仅用于获取层内部冷却重试"""


class ProviderRejection(StockGenieError):
    """提供商拒绝请求（参数错误 / 认证失败 / 资源不存在），不可重试"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFailure(StockGenieError):
    """暂时性故障（超时 / 5xx / 网络抖动），按策略重试"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedPayload(ProviderRejection):
    """响应无法解析，或响应体中包含提供商报告的错误信息"""


class LLMUnavailableError(StockGenieError):
    """本地大模型服务不可用或返回异常"""


__all__ = [
    "StockGenieError",
    "ConfigurationError",
    "RateLimitExceeded",
    "ProviderRejection",
    "TransientFailure",
    "MalformedPayload",
    "LLMUnavailableError",
]
