"""OpenAI 规划服务（官方 SDK）"""

from typing import Any, Dict, List, Optional

import httpx
from openai import APIStatusError, OpenAI, OpenAIError

from ..errors import ProviderError
from .base import DEFAULT_TIMEOUTS, MAX_TOKENS, TEMPERATURE, PlanningProvider, ProviderTimeouts


class OpenAIProvider(PlanningProvider):
    """OpenAI Chat Completions"""

    name = "OpenAI"

    def __init__(self, api_key: str, model: str = "gpt-4o",
                 base_url: str = "https://api.openai.com/v1",
                 timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS,
                 client: Optional[OpenAI] = None):
        super().__init__(timeouts)
        self.model = model
        self.client = client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=httpx.Timeout(
                timeouts.read, connect=timeouts.connect, write=timeouts.write
            ),
            max_retries=0,
        )

    def build_messages(self, user_prompt: str, screenshot_base64: Optional[str]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = []
        if screenshot_base64:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{screenshot_base64}", "detail": "high"},
            })
        content.append({"type": "text", "text": user_prompt})
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": content},
        ]

    def complete(self, user_prompt: str, screenshot_base64: Optional[str]) -> Optional[str]:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(user_prompt, screenshot_base64),
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
            )
        except APIStatusError as e:
            raise ProviderError(
                f"API call failed ({e.status_code}): {e.message}",
                provider=self.name,
                status_code=e.status_code,
            ) from e
        except OpenAIError as e:
            self._log(f"请求失败: {e}")
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e

        if not response.choices:
            return None
        return response.choices[0].message.content
