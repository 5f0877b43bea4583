"""Gemini 规划服务（generateContent）"""

from typing import Any, Dict, List, Optional

import requests

from .base import DEFAULT_TIMEOUTS, MAX_TOKENS, TEMPERATURE, HttpPlanningProvider, ProviderTimeouts


GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(HttpPlanningProvider):
    name = "Gemini"

    def __init__(self, api_key: str, model: str = "gemini-1.5-pro",
                 timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS,
                 session: Optional[requests.Session] = None,
                 api_base: str = GEMINI_API_BASE):
        super().__init__(api_key, model, timeouts, session)
        self.api_base = api_base.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    def build_payload(self, user_prompt: str, screenshot_base64: Optional[str]) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": self.system_prompt}]
        if screenshot_base64:
            parts.append({"inline_data": {"mime_type": "image/png", "data": screenshot_base64}})
        parts.append({"text": user_prompt})
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"temperature": TEMPERATURE, "maxOutputTokens": MAX_TOKENS},
        }

    def complete(self, user_prompt: str, screenshot_base64: Optional[str]) -> Optional[str]:
        data = self._post_json(
            self.endpoint,
            self.build_payload(user_prompt, screenshot_base64),
            headers={"x-goog-api-key": self.api_key},
        )
        candidates = data.get("candidates") or []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            if parts:
                return parts[0].get("text")
        return None
