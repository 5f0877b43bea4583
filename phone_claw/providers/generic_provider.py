"""通用 OpenAI 兼容规划服务（Ollama、LM Studio、DeepSeek 等）"""

from typing import Any, Dict, Optional

import requests

from ..config.settings import CustomProvider
from ..errors import ProviderError
from .base import DEFAULT_TIMEOUTS, MAX_TOKENS, TEMPERATURE, HttpPlanningProvider, ProviderTimeouts


class GenericOpenAIProvider(HttpPlanningProvider):
    """
    任意 OpenAI 兼容接口

    请求 {base_url}/chat/completions；鉴权头名称和前缀可配置，
    不支持视觉的模型只发送纯文本。
    """

    def __init__(self, custom: CustomProvider, timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS,
                 session: Optional[requests.Session] = None):
        super().__init__(custom.api_key, custom.model_name, timeouts, session)
        self.custom = custom
        self.name = custom.name

    @property
    def endpoint(self) -> str:
        return f"{self.custom.base_url.rstrip('/')}/chat/completions"

    def auth_headers(self) -> Dict[str, str]:
        if self.custom.api_key_header and self.custom.api_key:
            return {self.custom.api_key_header: f"{self.custom.api_key_prefix}{self.custom.api_key}"}
        return {}

    def build_payload(self, user_prompt: str, screenshot_base64: Optional[str]) -> Dict[str, Any]:
        if self.custom.supports_vision and screenshot_base64:
            user_content: Any = [
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/png;base64,{screenshot_base64}", "detail": "high"},
                },
                {"type": "text", "text": user_prompt},
            ]
        else:
            user_content = user_prompt

        return {
            "model": self.custom.model_name,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

    def complete(self, user_prompt: str, screenshot_base64: Optional[str]) -> Optional[str]:
        data = self._post_json(
            self.endpoint,
            self.build_payload(user_prompt, screenshot_base64),
            headers=self.auth_headers(),
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected response from {self.name}", provider=self.name) from e
        return content
