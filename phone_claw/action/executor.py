"""行动执行器 - 将动作命令转换为设备操作并分类结果"""

import time
from typing import Callable, Dict, Optional, Tuple, Type

from ..device.backend import CapabilitySlot, DeviceBackend
from ..errors import ExecutionError
from ..targeting.element_resolver import ElementResolver
from ..types import (
    ActionCommand,
    Click,
    ExecutionFailure,
    ExecutionOutcome,
    ExecutionSuccess,
    LaunchApp,
    PressBack,
    PressHome,
    Screenshot,
    Scroll,
    ScrollDirection,
    Swipe,
    TypeText,
    UINode,
    Wait,
)


DEFAULT_SCREEN_SIZE = (1080, 1920)
SCROLL_DURATION_MS = 300


class ActionExecutor:
    """
    行动执行器

    结果分类：
    - Click / TypeText 失败可重试
    - Scroll / Swipe / PressBack / PressHome 失败不可重试，但不阻塞任务
    - LaunchApp 失败为致命错误（通常是包名不存在）
    - Wait / Screenshot 总是成功
    - 后端抛出的任何异常都转换为可重试失败，不会向上抛出
    """

    def __init__(
        self,
        capability: CapabilitySlot,
        resolver: Optional[ElementResolver] = None,
        pre_action_delay: float = 0.5,
        focus_wait: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.capability = capability
        self.resolver = resolver or ElementResolver()
        self.pre_action_delay = pre_action_delay
        self.focus_wait = focus_wait
        self._sleep = sleep
        self.on_log_callback: Optional[Callable[[str], None]] = None

        self._handlers: Dict[Type, Callable[[DeviceBackend, ActionCommand], str]] = {
            Click: self._execute_click,
            TypeText: self._execute_type,
            Scroll: self._execute_scroll,
            Swipe: self._execute_swipe,
            LaunchApp: self._execute_launch,
            PressBack: self._execute_back,
            PressHome: self._execute_home,
        }

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def execute(self, command: ActionCommand) -> ExecutionOutcome:
        """
        执行动作命令

        Args:
            command: 要执行的命令

        Returns:
            ExecutionSuccess 或 ExecutionFailure
        """
        # 不需要设备的动作
        if isinstance(command, Wait):
            self._sleep(command.duration_ms / 1000.0)
            return ExecutionSuccess(command, f"Waited {command.duration_ms}ms")
        if isinstance(command, Screenshot):
            return ExecutionSuccess(command, "Screenshot captured")

        handler = self._handlers.get(type(command))
        if handler is None:
            return ExecutionFailure(
                command, f"不支持的动作类型: {type(command).__name__}", retryable=False
            )

        backend = self.capability.get()
        if backend is None:
            return ExecutionFailure(command, "设备服务未连接", retryable=False)

        if self.pre_action_delay > 0:
            self._sleep(self.pre_action_delay)

        try:
            message = handler(backend, command)
        except ExecutionError as e:
            self._log(f"执行失败: {command.describe()} - {e}")
            return ExecutionFailure(command, str(e), retryable=e.retryable, fatal=e.fatal)
        except Exception as e:
            self._log(f"执行异常: {command.describe()} - {e}")
            return ExecutionFailure(command, str(e) or type(e).__name__, retryable=True)

        return ExecutionSuccess(command, message)

    # ------------------------------------------------------------------
    # 各动作实现：成功返回消息，失败抛出 ExecutionError

    def _execute_click(self, backend: DeviceBackend, command: Click) -> str:
        # 坐标来自视觉模型，优先于文字匹配
        if command.has_coordinates:
            if not backend.tap(command.x, command.y):
                raise ExecutionError(f"Failed to click on coordinates ({command.x}, {command.y})")
            return "Clicked successfully"

        if command.description:
            x, y = self._locate(backend, command.description)
            if not backend.tap(x, y):
                raise ExecutionError(f"Failed to click on {command.description}")
            return "Clicked successfully"

        raise ExecutionError("Click has neither coordinates nor description")

    def _execute_type(self, backend: DeviceBackend, command: TypeText) -> str:
        if command.target_field:
            # 聚焦输入框只是尽力而为，结果以输入为准
            try:
                node = self.resolver.resolve(command.target_field, backend.get_ui_tree())
                if node is None:
                    self._log(f"未找到输入框: {command.target_field}")
                elif not backend.tap(*node.center):
                    self._log(f"点击输入框失败: {command.target_field}")
            except Exception as e:
                self._log(f"聚焦输入框出错: {e}")
            # 等待焦点和输入法出现
            self._sleep(self.focus_wait)

        if not backend.set_focused_text(command.text):
            raise ExecutionError("Failed to type text")
        return "Typed text successfully"

    def _execute_scroll(self, backend: DeviceBackend, command: Scroll) -> str:
        width, height = self._screen_size(backend.get_ui_tree())
        cx, cy = width // 2, height // 2
        half = command.amount // 2

        if command.direction == ScrollDirection.UP:
            start, end = (cx, cy + half), (cx, cy - half)
        elif command.direction == ScrollDirection.DOWN:
            start, end = (cx, cy - half), (cx, cy + half)
        elif command.direction == ScrollDirection.LEFT:
            start, end = (cx + half, cy), (cx - half, cy)
        else:
            start, end = (cx - half, cy), (cx + half, cy)

        start = self._clamp(start, width, height)
        end = self._clamp(end, width, height)
        if not backend.swipe(start[0], start[1], end[0], end[1], SCROLL_DURATION_MS):
            raise ExecutionError(f"Failed to scroll {command.direction.value}", retryable=False)
        return f"Scrolled {command.direction.value}"

    def _execute_swipe(self, backend: DeviceBackend, command: Swipe) -> str:
        ok = backend.swipe(
            command.start_x, command.start_y,
            command.end_x, command.end_y,
            command.duration_ms,
        )
        if not ok:
            raise ExecutionError("Failed to swipe", retryable=False)
        return "Swiped successfully"

    def _execute_launch(self, backend: DeviceBackend, command: LaunchApp) -> str:
        if not backend.launch_app(command.package_id):
            raise ExecutionError(
                f"Failed to launch {command.package_id}", retryable=False, fatal=True
            )
        return f"Launched {command.package_id}"

    def _execute_back(self, backend: DeviceBackend, command: PressBack) -> str:
        if not backend.press_back():
            raise ExecutionError("Failed to press back", retryable=False)
        return "Pressed back"

    def _execute_home(self, backend: DeviceBackend, command: PressHome) -> str:
        if not backend.press_home():
            raise ExecutionError("Failed to press home", retryable=False)
        return "Pressed home"

    # ------------------------------------------------------------------

    def _locate(self, backend: DeviceBackend, description: str) -> Tuple[int, int]:
        tree = backend.get_ui_tree()
        if tree is None:
            raise ExecutionError(f"无法获取界面结构，不能定位 {description}")
        node = self.resolver.resolve(description, tree)
        if node is None:
            raise ExecutionError(f"Element not found: {description}")
        return node.center

    @staticmethod
    def _screen_size(tree: Optional[UINode]) -> Tuple[int, int]:
        if tree is not None and tree.width > 0 and tree.height > 0:
            return tree.bounds[2], tree.bounds[3]
        return DEFAULT_SCREEN_SIZE

    @staticmethod
    def _clamp(point: Tuple[int, int], width: int, height: int) -> Tuple[int, int]:
        x, y = point
        return max(0, min(x, width - 1)), max(0, min(y, height - 1))
