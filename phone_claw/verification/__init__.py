"""任务完成度验证"""

from .advisor import VerificationAdvisor, heuristic_completion

__all__ = ["VerificationAdvisor", "heuristic_completion"]
