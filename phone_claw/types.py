"""核心类型定义 - 动作命令、执行结果、任务运行记录、UI 树"""

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScrollDirection(str, Enum):
    """滚动方向"""
    UP = "UP"
    DOWN = "DOWN"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


class _Command(BaseModel):
    """动作命令基类：不可变，构造时校验"""

    model_config = ConfigDict(frozen=True)

    def describe(self) -> str:
        raise NotImplementedError

    def to_prompt_dict(self) -> Dict[str, Any]:
        """转换为可回注到提示词中的 JSON 结构（与解码器接受的字段一致）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_prompt_json(self) -> str:
        return json.dumps(self.to_prompt_dict(), ensure_ascii=False)

    def __str__(self) -> str:
        return self.describe()


class Click(_Command):
    action: Literal["CLICK"] = "CLICK"
    x: Optional[int] = Field(default=None, ge=0)
    y: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _require_target(self) -> "Click":
        has_coords = self.x is not None and self.y is not None
        if not has_coords and not (self.description and self.description.strip()):
            raise ValueError("CLICK requires both x and y, or a description")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.x is not None and self.y is not None

    def describe(self) -> str:
        if self.description:
            return f"Click on {self.description}"
        return f"Click on coordinates ({self.x}, {self.y})"


class TypeText(_Command):
    action: Literal["TYPE"] = "TYPE"
    text: str = Field(min_length=1)
    target_field: Optional[str] = Field(default=None, serialization_alias="field")

    def describe(self) -> str:
        if self.target_field:
            return f"Type '{self.text}' in {self.target_field}"
        return f"Type '{self.text}'"


class Scroll(_Command):
    action: Literal["SCROLL"] = "SCROLL"
    direction: ScrollDirection = ScrollDirection.DOWN
    amount: int = Field(default=500, ge=0)

    def describe(self) -> str:
        return f"Scroll {self.direction.value.lower()}"


class Swipe(_Command):
    action: Literal["SWIPE"] = "SWIPE"
    start_x: int = Field(ge=0, serialization_alias="startX")
    start_y: int = Field(ge=0, serialization_alias="startY")
    end_x: int = Field(ge=0, serialization_alias="endX")
    end_y: int = Field(ge=0, serialization_alias="endY")
    duration_ms: int = Field(default=300, ge=0, serialization_alias="duration")

    def describe(self) -> str:
        return f"Swipe from ({self.start_x},{self.start_y}) to ({self.end_x},{self.end_y})"


class Wait(_Command):
    action: Literal["WAIT"] = "WAIT"
    duration_ms: int = Field(default=1000, ge=0, serialization_alias="duration")

    def describe(self) -> str:
        return f"Wait {self.duration_ms}ms"


class LaunchApp(_Command):
    action: Literal["LAUNCH_APP"] = "LAUNCH_APP"
    package_id: str = Field(min_length=1, serialization_alias="package")

    def describe(self) -> str:
        return f"Launch {self.package_id}"


class PressBack(_Command):
    action: Literal["PRESS_BACK"] = "PRESS_BACK"

    def describe(self) -> str:
        return "Press Back button"


class PressHome(_Command):
    action: Literal["PRESS_HOME"] = "PRESS_HOME"

    def describe(self) -> str:
        return "Press Home button"


class Screenshot(_Command):
    action: Literal["SCREENSHOT"] = "SCREENSHOT"

    def describe(self) -> str:
        return "Take screenshot"


ActionCommand = Union[
    Click, TypeText, Scroll, Swipe, Wait, LaunchApp, PressBack, PressHome, Screenshot
]


@dataclass(frozen=True)
class ExecutionSuccess:
    """动作执行成功"""
    command: ActionCommand
    message: str = "Action completed successfully"

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ExecutionFailure:
    """动作执行失败

    retryable: 失败是否值得重新规划后再尝试
    fatal: 是否应立即终止任务（例如应用包不存在）
    """
    command: ActionCommand
    message: str
    retryable: bool = True
    fatal: bool = False

    @property
    def ok(self) -> bool:
        return False


ExecutionOutcome = Union[ExecutionSuccess, ExecutionFailure]


class TaskStatus(str, Enum):
    """任务状态"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class FinishReason(str, Enum):
    """任务结束原因"""
    CONFIRMED = "confirmed"  # 规划服务返回空动作
    VERIFIED = "verified"  # 验证器判断已完成
    STEP_LIMIT = "step_limit"  # 步数用尽
    RETRY_EXHAUSTED = "retry_exhausted"  # 连续失败达到阈值
    FATAL_ERROR = "fatal_error"  # 不可恢复的执行失败
    CANCELLED = "cancelled"
    ERROR = "error"  # 意外异常


@dataclass
class TaskRun:
    """单次任务运行记录，仅由编排器修改"""
    goal: str
    status: TaskStatus = TaskStatus.IDLE
    history: List[ActionCommand] = field(default_factory=list)
    step_index: int = 0
    consecutive_failures: int = 0
    max_steps: int = 0
    finish_reason: Optional[FinishReason] = None
    last_error: Optional[str] = None
    message: str = ""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    def snapshot(self) -> "TaskRun":
        """生成供观察者读取的副本"""
        return replace(self, history=list(self.history))

    def touch(self):
        self.updated_at = time.time()

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.created_at

    @property
    def is_step_limit_completion(self) -> bool:
        return self.status == TaskStatus.COMPLETED and self.finish_reason == FinishReason.STEP_LIMIT


@dataclass(frozen=True)
class VerificationResult:
    """任务完成度验证结果"""
    is_successful: bool
    is_task_complete: bool
    reason: str
    suggested_next_action: Optional[str] = None


@dataclass
class UINode:
    """UI 树节点"""
    text: str = ""
    content_desc: str = ""
    resource_id: str = ""
    class_name: str = ""
    package: str = ""
    clickable: bool = False
    editable: bool = False
    focused: bool = False
    scrollable: bool = False
    enabled: bool = True
    bounds: Tuple[int, int, int, int] = (0, 0, 0, 0)  # left, top, right, bottom
    children: List["UINode"] = field(default_factory=list)

    @property
    def center(self) -> Tuple[int, int]:
        l, t, r, b = self.bounds
        return (l + r) // 2, (t + b) // 2

    @property
    def width(self) -> int:
        return self.bounds[2] - self.bounds[0]

    @property
    def height(self) -> int:
        return self.bounds[3] - self.bounds[1]

    @property
    def short_class(self) -> str:
        return self.class_name.rsplit(".", 1)[-1] if self.class_name else "Unknown"

    @property
    def short_id(self) -> str:
        return self.resource_id.split("/")[-1] if "/" in self.resource_id else self.resource_id

    @property
    def display_name(self) -> str:
        if self.text.strip():
            return self.text
        if self.content_desc.strip():
            return self.content_desc
        if self.resource_id:
            return self.short_id
        return self.short_class

    def iter_preorder(self) -> Iterator["UINode"]:
        """先序遍历（自身先于子节点，子节点按顺序）"""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_with_depth(self, depth: int = 0) -> Iterator[Tuple["UINode", int]]:
        stack = [(self, depth)]
        while stack:
            node, level = stack.pop()
            yield node, level
            stack.extend((child, level + 1) for child in reversed(node.children))
