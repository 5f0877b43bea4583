"""
Phone Claw - 逐步决策的手机自动化 Agent

给定自然语言目标，循环执行：
1. 采集当前界面（UI 树描述 + 可选截图）
2. 请求规划服务给出"下一个"动作，不做整体预规划
3. 解码并修复规划服务返回的文本，得到类型化的动作命令
4. 在设备上执行动作，并对结果分类（可重试 / 不可重试 / 致命）
5. 决定继续、重新规划或停止

架构：
- parsing/      - 规划结果解码与修复
- targeting/    - 根据文字描述定位界面元素
- action/       - 动作执行与结果分类
- verification/ - 任务完成度验证
- device/       - 设备后端、能力插槽、ADB 实现
- observation/  - 屏幕描述
- providers/    - 规划服务
- orchestrator.py - 执行循环
"""

from .action import ActionExecutor
from .device import CapabilitySlot, DeviceBackend, GestureHandle
from .errors import (
    AgentError,
    ConfigurationError,
    DecodeError,
    ExecutionError,
    ProviderError,
    RetryExhausted,
    TaskCancelled,
)
from .orchestrator import PlanningOrchestrator, RunConfig
from .parsing import PlanDecoder
from .targeting import ElementResolver
from .types import (
    ActionCommand,
    Click,
    ExecutionFailure,
    ExecutionSuccess,
    FinishReason,
    LaunchApp,
    PressBack,
    PressHome,
    Screenshot,
    Scroll,
    ScrollDirection,
    Swipe,
    TaskRun,
    TaskStatus,
    TypeText,
    UINode,
    VerificationResult,
    Wait,
)
from .verification import VerificationAdvisor

__version__ = "0.1.0"

__all__ = [
    "PlanningOrchestrator",
    "RunConfig",
    "PlanDecoder",
    "ElementResolver",
    "ActionExecutor",
    "VerificationAdvisor",
    "CapabilitySlot",
    "DeviceBackend",
    "GestureHandle",
    "ActionCommand",
    "Click",
    "TypeText",
    "Scroll",
    "ScrollDirection",
    "Swipe",
    "Wait",
    "LaunchApp",
    "PressBack",
    "PressHome",
    "Screenshot",
    "ExecutionSuccess",
    "ExecutionFailure",
    "TaskRun",
    "TaskStatus",
    "FinishReason",
    "VerificationResult",
    "UINode",
    "AgentError",
    "ConfigurationError",
    "DecodeError",
    "ProviderError",
    "ExecutionError",
    "RetryExhausted",
    "TaskCancelled",
]
