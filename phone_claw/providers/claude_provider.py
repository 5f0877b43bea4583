"""Claude 规划服务（Messages API）"""

from typing import Any, Dict, List, Optional

import requests

from .base import DEFAULT_TIMEOUTS, MAX_TOKENS, HttpPlanningProvider, ProviderTimeouts


CLAUDE_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeProvider(HttpPlanningProvider):
    name = "Claude"

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022",
                 timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS,
                 session: Optional[requests.Session] = None,
                 api_url: str = CLAUDE_API_URL):
        super().__init__(api_key, model, timeouts, session)
        self.api_url = api_url

    def build_payload(self, user_prompt: str, screenshot_base64: Optional[str]) -> Dict[str, Any]:
        # 系统提示词作为第一段文本，随后是截图和任务
        content: List[Dict[str, Any]] = [{"type": "text", "text": self.system_prompt}]
        if screenshot_base64:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": screenshot_base64},
            })
        content.append({"type": "text", "text": user_prompt})
        return {
            "model": self.model,
            "max_tokens": MAX_TOKENS,
            "messages": [{"role": "user", "content": content}],
        }

    def complete(self, user_prompt: str, screenshot_base64: Optional[str]) -> Optional[str]:
        data = self._post_json(
            self.api_url,
            self.build_payload(user_prompt, screenshot_base64),
            headers={"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION},
        )
        for block in data.get("content") or []:
            if block.get("type") == "text" and block.get("text") is not None:
                return block["text"]
        return None
