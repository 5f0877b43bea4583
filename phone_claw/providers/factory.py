"""根据配置创建规划服务"""

from typing import Optional

from ..config.settings import (
    PROVIDER_CLAUDE,
    PROVIDER_CUSTOM,
    PROVIDER_GEMINI,
    PROVIDER_OPENAI,
    Settings,
)
from ..errors import ConfigurationError
from .base import DEFAULT_TIMEOUTS, PlanningProvider, ProviderTimeouts
from .claude_provider import ClaudeProvider
from .gemini_provider import GeminiProvider
from .generic_provider import GenericOpenAIProvider
from .openai_provider import OpenAIProvider


def create_provider(settings: Settings, provider: Optional[str] = None,
                    timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS) -> PlanningProvider:
    """
    创建规划服务

    Raises:
        ConfigurationError: 未知服务、未选择自定义服务或缺少 API Key
    """
    name = (provider or settings.provider or PROVIDER_OPENAI).lower()

    if name == PROVIDER_CUSTOM:
        custom = settings.get_custom_provider()
        if custom is None:
            raise ConfigurationError("No custom provider selected")
        return GenericOpenAIProvider(custom, timeouts=timeouts)

    if name not in (PROVIDER_OPENAI, PROVIDER_CLAUDE, PROVIDER_GEMINI):
        raise ConfigurationError(f"Unknown provider: {name}")

    api_key = settings.api_key_for(name)
    if not api_key.strip():
        raise ConfigurationError(f"API key not configured for {name}")

    if name == PROVIDER_OPENAI:
        return OpenAIProvider(
            api_key, model=settings.openai_model, base_url=settings.openai_base_url, timeouts=timeouts
        )
    if name == PROVIDER_CLAUDE:
        return ClaudeProvider(api_key, model=settings.claude_model, timeouts=timeouts)
    return GeminiProvider(api_key, model=settings.gemini_model, timeouts=timeouts)
