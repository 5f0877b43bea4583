"""错误类型"""

from typing import Optional


class AgentError(Exception):
    """Agent 错误基类"""


class ConfigurationError(AgentError):
    """配置缺失或无效（如未配置 API Key）"""


class DecodeError(AgentError):
    """规划服务返回的文本无法解析为动作数组"""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class ProviderError(AgentError):
    """规划服务调用失败（网络、鉴权、服务端错误）"""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ExecutionError(AgentError):
    """设备操作失败"""

    def __init__(self, message: str, retryable: bool = True, fatal: bool = False):
        super().__init__(message)
        self.retryable = retryable
        self.fatal = fatal


class RetryExhausted(AgentError):
    """连续失败次数达到阈值"""

    def __init__(self, attempts: int, last_error: str):
        super().__init__(f"连续失败 {attempts} 次: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class TaskCancelled(AgentError):
    """任务被外部取消"""
