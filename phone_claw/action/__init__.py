"""动作执行"""

from .executor import ActionExecutor

__all__ = ["ActionExecutor"]
