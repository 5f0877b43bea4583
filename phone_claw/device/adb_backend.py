"""基于 ADB 的设备自动化后端"""

import base64
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .adb_helper import ADBHelper
from .backend import DeviceBackend, GestureHandle
from .ui_dump import parse_ui_hierarchy
from ..types import UINode


KEYCODE_BACK = "4"
KEYCODE_HOME = "3"
ADB_KEYBOARD_ACTION = "ADB_INPUT_B64"
UI_DUMP_PATH = "/sdcard/phone_claw_ui.xml"

# 手势分发后等待完成的额外时间（秒）
GESTURE_TIMEOUT = 10.0


def escape_input_text(text: str) -> str:
    """转义 `adb shell input text` 的特殊字符"""
    escaped = text.replace("\\", "\\\\")
    for ch in ("&", "<", ">", "(", ")", "|", ";", "*", "'", '"', "$", "`"):
        escaped = escaped.replace(ch, "\\" + ch)
    return escaped.replace(" ", "%s")


class AdbDeviceBackend(DeviceBackend):
    """
    ADB 设备后端

    所有设备调用都经由同一个工作线程串行执行，保证不会并发操作设备。
    点击和滑动以 GestureHandle 形式分发，调用方在超时内等待其完成。
    """

    def __init__(self, adb_helper: Optional[ADBHelper] = None,
                 gesture_timeout: float = GESTURE_TIMEOUT):
        self.adb = adb_helper or ADBHelper()
        self.gesture_timeout = gesture_timeout
        self.on_log_callback: Optional[Callable[[str], None]] = None
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="adb-device")
        self._closed = False
        self._lock = threading.Lock()

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def _call(self, fn: Callable, *args):
        return self._worker.submit(fn, *args).result()

    def _shell(self, args: List[str], timeout: int = 30) -> bool:
        ok, output = self.adb.run_command(["shell", *args], timeout=timeout)
        if not ok:
            self._log(f"ADB 命令失败 {' '.join(args[:3])}: {output}")
        return ok

    def dispatch_gesture(self, args: List[str]) -> GestureHandle:
        """提交手势命令，返回完成句柄"""
        handle = GestureHandle()
        future = self._worker.submit(self._shell, args)

        def _resolve(done: Future):
            if done.cancelled() or done.exception() is not None or not done.result():
                handle.on_cancelled()
            else:
                handle.on_completed()

        future.add_done_callback(_resolve)
        return handle

    def tap(self, x: int, y: int) -> bool:
        handle = self.dispatch_gesture(["input", "tap", str(x), str(y)])
        return handle.wait(self.gesture_timeout)

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int) -> bool:
        handle = self.dispatch_gesture([
            "input", "swipe", str(x1), str(y1), str(x2), str(y2), str(duration_ms)
        ])
        return handle.wait(self.gesture_timeout + duration_ms / 1000.0)

    def set_focused_text(self, text: str) -> bool:
        return self._call(self._input_text, text)

    def _input_text(self, text: str) -> bool:
        # ADB Keyboard 接口要求 Base64 编码
        encoded = base64.b64encode(text.encode("utf-8")).decode("utf-8")
        ok, output = self.adb.run_command(
            ["shell", "am", "broadcast", "-a", ADB_KEYBOARD_ACTION, "--es", "msg", encoded]
        )
        if ok:
            return True

        # ADB Keyboard 不可用时回退到基础输入（仅 ASCII）
        if not text.isascii():
            self._log("ADB Keyboard 不可用，无法输入非 ASCII 文本")
            return False
        return self._shell(["input", "text", escape_input_text(text)])

    def press_back(self) -> bool:
        return self._call(self._shell, ["input", "keyevent", KEYCODE_BACK])

    def press_home(self) -> bool:
        return self._call(self._shell, ["input", "keyevent", KEYCODE_HOME])

    def launch_app(self, package_id: str) -> bool:
        return self._call(self._launch, package_id)

    def _launch(self, package_id: str) -> bool:
        ok, output = self.adb.run_command([
            "shell", "monkey",
            "-p", package_id,
            "-c", "android.intent.category.LAUNCHER",
            "1",
        ])
        if not ok or "No activities found" in output or "monkey aborted" in output:
            self._log(f"启动应用失败 {package_id}: {output}")
            return False
        return True

    def get_ui_tree(self) -> Optional[UINode]:
        return self._call(self._dump_ui)

    def _dump_ui(self) -> Optional[UINode]:
        ok, output = self.adb.run_command(["shell", "uiautomator", "dump", UI_DUMP_PATH], timeout=15)
        if not ok:
            self._log(f"uiautomator dump 失败: {output}")
            return None
        ok, xml_text = self.adb.run_command(["exec-out", "cat", UI_DUMP_PATH], timeout=10)
        if not ok:
            return None
        return parse_ui_hierarchy(xml_text)

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._worker.shutdown(wait=True)
