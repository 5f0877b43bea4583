"""截图提供者 - 截取设备屏幕并编码为 base64 PNG"""

import base64
from io import BytesIO
from typing import Callable, Optional

from PIL import Image, UnidentifiedImageError

from .adb_helper import ADBHelper


PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def encode_image(png_bytes: bytes, max_side: int = 1280) -> Optional[str]:
    """
    校验并压缩 PNG 数据

    Args:
        png_bytes: 原始 PNG 字节
        max_side: 最长边上限，0 表示不缩放

    Returns:
        base64 字符串；数据不是有效 PNG 时返回 None
    """
    if not png_bytes or len(png_bytes) < 100 or png_bytes[:8] != PNG_HEADER:
        return None

    try:
        img = Image.open(BytesIO(png_bytes))
        img.load()
    except (UnidentifiedImageError, OSError):
        return None

    width, height = img.size
    longest = max(width, height)
    if max_side and longest > max_side:
        scale = max_side / float(longest)
        img = img.resize((max(1, int(width * scale)), max(1, int(height * scale))))

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode("utf-8")


class AdbScreenshotProvider:
    """通过 `adb exec-out screencap -p` 截图"""

    def __init__(self, adb_helper: Optional[ADBHelper] = None, max_side: int = 1280,
                 timeout: int = 10):
        self.adb = adb_helper or ADBHelper()
        self.max_side = max_side
        self.timeout = timeout
        self.on_log_callback: Optional[Callable[[str], None]] = None

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def capture_and_encode(self) -> Optional[str]:
        """截图并编码，截图不可用（如安全页面、设备断开）时返回 None"""
        ok, data = self.adb.run_binary(["exec-out", "screencap", "-p"], timeout=self.timeout)
        if not ok:
            self._log("截图失败")
            return None

        encoded = encode_image(data, self.max_side)
        if encoded is None:
            self._log("截图数据无效")
        return encoded
