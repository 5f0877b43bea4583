"""
ADB 命令封装
定位 adb 可执行文件，并对指定设备执行命令
"""

import os
import shutil
import subprocess
from typing import List, Optional, Tuple


class ADBHelper:
    """ADB 工具辅助类"""

    def __init__(self, adb_path: Optional[str] = None, device_id: Optional[str] = None):
        self.custom_adb_path = adb_path
        self.device_id = device_id or None
        self._adb_path: Optional[str] = None

    def get_adb_path(self) -> str:
        """获取 adb 可执行文件路径，找不到返回空字符串"""
        if self._adb_path:
            return self._adb_path

        # 优先使用自定义路径
        if self.custom_adb_path and os.path.exists(self.custom_adb_path):
            self._adb_path = self.custom_adb_path
            return self._adb_path

        found = shutil.which("adb")
        if found:
            self._adb_path = found
            return self._adb_path
        return ""

    def _build(self, args: List[str], with_device: bool) -> List[str]:
        cmd = [self.get_adb_path()]
        if with_device and self.device_id:
            cmd += ["-s", self.device_id]
        return cmd + list(args)

    def run_command(self, args: List[str], timeout: int = 30,
                    with_device: bool = True) -> Tuple[bool, str]:
        """运行 adb 命令，返回 (是否成功, 输出或错误信息)"""
        if not self.get_adb_path():
            return False, "ADB不可用"

        try:
            result = subprocess.run(
                self._build(args, with_device),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return False, "命令执行超时"
        except OSError as e:
            return False, str(e)

        if result.returncode == 0:
            return True, result.stdout.strip()
        return False, result.stderr.strip() or result.stdout.strip()

    def run_binary(self, args: List[str], timeout: int = 10) -> Tuple[bool, bytes]:
        """运行输出为二进制的命令（如 screencap）"""
        if not self.get_adb_path():
            return False, b""

        try:
            result = subprocess.run(
                self._build(args, True),
                capture_output=True,
                timeout=timeout,
            )
        except (subprocess.TimeoutExpired, OSError):
            return False, b""
        return result.returncode == 0, result.stdout

    def list_devices(self) -> List[str]:
        """列出已连接设备的序列号"""
        ok, output = self.run_command(["devices"], timeout=5, with_device=False)
        if not ok:
            return []
        devices = []
        for line in output.splitlines()[1:]:
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                devices.append(parts[0])
        return devices
