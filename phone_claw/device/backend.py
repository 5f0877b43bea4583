"""
设备自动化后端接口

核心组件不直接访问全局服务实例：宿主在连接设备时把后端放入 CapabilitySlot，
执行器等组件通过注入的插槽获取后端，插槽为空视为"能力暂不可用"。
"""

import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from ..errors import ConfigurationError
from ..types import UINode


class DeviceBackend(ABC):
    """设备自动化原语，每个操作返回尽力而为的布尔结果"""

    @abstractmethod
    def tap(self, x: int, y: int) -> bool:
        ...

    @abstractmethod
    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int) -> bool:
        ...

    @abstractmethod
    def set_focused_text(self, text: str) -> bool:
        ...

    @abstractmethod
    def press_back(self) -> bool:
        ...

    @abstractmethod
    def press_home(self) -> bool:
        ...

    @abstractmethod
    def launch_app(self, package_id: str) -> bool:
        ...

    @abstractmethod
    def get_ui_tree(self) -> Optional[UINode]:
        """获取当前界面树，None 表示暂不可用"""
        ...


class CapabilitySlot:
    """单次赋值的能力插槽"""

    def __init__(self):
        self._backend: Optional[DeviceBackend] = None
        self._lock = threading.Lock()

    def attach(self, backend: DeviceBackend):
        """宿主连接时调用，只允许设置一次"""
        with self._lock:
            if self._backend is not None and self._backend is not backend:
                raise ConfigurationError("设备后端已连接，不能重复设置")
            self._backend = backend

    def detach(self):
        """宿主断开时调用"""
        with self._lock:
            self._backend = None

    def get(self) -> Optional[DeviceBackend]:
        return self._backend

    @property
    def is_attached(self) -> bool:
        return self._backend is not None


class GestureHandle:
    """
    手势完成句柄

    对应一次手势分发，只会被解析一次：完成(True)或取消(False)。
    重复解析会被忽略，等待超时视为取消。
    """

    def __init__(self):
        self._future: Future = Future()
        self._lock = threading.Lock()

    def on_completed(self) -> bool:
        return self._resolve(True)

    def on_cancelled(self) -> bool:
        return self._resolve(False)

    def _resolve(self, completed: bool) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(completed)
            return True

    @property
    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """等待手势结果，超时则取消并返回 False"""
        try:
            return self._future.result(timeout=timeout)
        except FutureTimeoutError:
            self.on_cancelled()
            return self._future.result()
