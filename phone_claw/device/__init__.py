"""设备层：自动化后端接口、能力插槽、ADB 实现、截图"""

from .backend import CapabilitySlot, DeviceBackend, GestureHandle
from .adb_helper import ADBHelper
from .adb_backend import AdbDeviceBackend
from .screenshot import AdbScreenshotProvider
from .ui_dump import parse_ui_hierarchy

__all__ = [
    "DeviceBackend",
    "CapabilitySlot",
    "GestureHandle",
    "ADBHelper",
    "AdbDeviceBackend",
    "AdbScreenshotProvider",
    "parse_ui_hierarchy",
]
