"""规划服务：接口、提示词模板、各后端实现"""

from .base import HttpPlanningProvider, PlanningProvider, ProviderTimeouts
from .claude_provider import ClaudeProvider
from .factory import create_provider
from .gemini_provider import GeminiProvider
from .generic_provider import GenericOpenAIProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "PlanningProvider",
    "HttpPlanningProvider",
    "ProviderTimeouts",
    "OpenAIProvider",
    "ClaudeProvider",
    "GeminiProvider",
    "GenericOpenAIProvider",
    "create_provider",
]
