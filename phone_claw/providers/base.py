"""
规划服务接口

规划服务只负责构造请求、鉴权和提取回复文本，不做动作解析；
解析统一由 PlanDecoder 完成。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import ProviderError
from .prompts import SYSTEM_PROMPT, build_next_action_prompt


@dataclass(frozen=True)
class ProviderTimeouts:
    """
    请求超时（秒）

    write 只用于 OpenAI SDK（httpx）；requests 没有写超时，as_requests 只返回 (connect, read)。
    """
    connect: float = 30.0
    read: float = 120.0
    write: float = 60.0

    def as_requests(self):
        return (self.connect, self.read)


DEFAULT_TIMEOUTS = ProviderTimeouts()
MAX_TOKENS = 4096
TEMPERATURE = 0.7


class PlanningProvider(ABC):
    """规划服务基类"""

    name = "provider"

    def __init__(self, timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS):
        self.timeouts = timeouts
        self.system_prompt = SYSTEM_PROMPT
        self.on_log_callback: Optional[Callable[[str], None]] = None

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(f"[{self.name}] {message}")

    def plan_next(
        self,
        goal: str,
        screen_context: Optional[str] = None,
        screenshot_base64: Optional[str] = None,
        history: Optional[str] = None,
    ) -> str:
        """
        请求下一步动作

        Args:
            goal: 任务目标
            screen_context: 当前屏幕文本描述
            screenshot_base64: 当前截图
            history: 已执行动作历史

        Returns:
            模型回复的原始文本

        Raises:
            ProviderError: 网络、鉴权或服务端错误，以及回复中没有文本字段
        """
        user_prompt = build_next_action_prompt(goal, screen_context, history)
        content = self.complete(user_prompt, screenshot_base64 or None)
        # 空白文本交给解码器，视为没有后续动作
        if content is None:
            raise ProviderError(f"Empty response from {self.name}", provider=self.name)
        return content

    @abstractmethod
    def complete(self, user_prompt: str, screenshot_base64: Optional[str]) -> Optional[str]:
        """发送请求并返回回复文本，回复中没有文本字段时返回 None"""


class HttpPlanningProvider(PlanningProvider):
    """基于 requests 的规划服务"""

    def __init__(self, api_key: str, model: str, timeouts: ProviderTimeouts = DEFAULT_TIMEOUTS,
                 session: Optional[requests.Session] = None):
        super().__init__(timeouts)
        self.api_key = api_key
        self.model = model
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def _post_json(self, url: str, payload: Dict[str, Any],
                   headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            response = self._session.post(
                url, json=payload, headers=headers, timeout=self.timeouts.as_requests()
            )
        except requests.exceptions.RequestException as e:
            self._log(f"请求失败: {e}")
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e

        if not response.ok:
            body = (response.text or "")[:500]
            raise ProviderError(
                f"API call failed ({response.status_code}): {body}",
                provider=self.name,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {self.name}", provider=self.name) from e
