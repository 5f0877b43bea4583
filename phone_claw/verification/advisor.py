"""任务完成度验证 - 追加一次规划请求判断任务是否完成"""

from typing import Callable, Optional, Sequence, Tuple

from ..errors import DecodeError, ProviderError
from ..parsing.plan_decoder import PlanDecoder
from ..providers.base import PlanningProvider
from ..providers.prompts import build_action_history
from ..types import ActionCommand, VerificationResult


# (目标需同时包含的关键词, 屏幕包含任一即视为完成)，按顺序取第一条命中的规则
COMPLETION_RULES: Sequence[Tuple[Tuple[str, ...], Tuple[str, ...]]] = (
    (("打开", "设置"), ("设置", "settings")),
    (("settings",), ("settings", "设置")),
    (("搜索",), ("搜索结果", "search")),
    (("search",), ("search results", "搜索结果")),
    (("播放",), ("播放", "playing")),
    (("play",), ("playing", "播放")),
)


def heuristic_completion(goal: str, screen_context: Optional[str]) -> bool:
    """关键词启发式判断，没有规则命中时返回 False"""
    if not goal or not screen_context:
        return False
    goal_lower = goal.lower()
    context_lower = screen_context.lower()
    for goal_terms, screen_terms in COMPLETION_RULES:
        if all(term in goal_lower for term in goal_terms):
            return any(term in context_lower for term in screen_terms)
    return False


class VerificationAdvisor:
    """
    验证顾问

    规划服务对"下一步是什么"返回空数组即视为完成，否则仍在进行，
    并把第一个剩余动作作为建议。规划请求失败时退回关键词启发式。
    """

    def __init__(self, provider: PlanningProvider, decoder: Optional[PlanDecoder] = None):
        self.provider = provider
        self.decoder = decoder or PlanDecoder()
        self.on_log_callback: Optional[Callable[[str], None]] = None

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def verify(
        self,
        goal: str,
        executed_command: ActionCommand,
        screen_context: Optional[str],
        screenshot_base64: Optional[str] = None,
    ) -> VerificationResult:
        try:
            raw = self.provider.plan_next(
                goal,
                screen_context=screen_context,
                screenshot_base64=screenshot_base64,
                history=build_action_history([executed_command]),
            )
            remaining = self.decoder.decode(raw)
        except (ProviderError, DecodeError) as e:
            self._log(f"验证请求失败，使用启发式判断: {e}")
            return self._fallback(goal, screen_context)

        if not remaining:
            return VerificationResult(
                is_successful=True,
                is_task_complete=True,
                reason="Task appears complete - no further actions needed",
            )
        return VerificationResult(
            is_successful=True,
            is_task_complete=False,
            reason=f"Task in progress - {len(remaining)} steps remaining",
            suggested_next_action=remaining[0].describe(),
        )

    @staticmethod
    def _fallback(goal: str, screen_context: Optional[str]) -> VerificationResult:
        complete = heuristic_completion(goal, screen_context)
        return VerificationResult(
            is_successful=True,
            is_task_complete=complete,
            reason="Task likely complete (heuristic)" if complete else "Verification unavailable",
        )
