"""
规划结果解码器

把规划服务返回的自由文本转换为动作命令序列。模型输出经常带有思考标签、
markdown 代码块、尾逗号或 "x": 540, 800 这类残缺字段，这里逐步清理后再解析。
每一步清理都是尽力而为，只有最终 JSON 解析失败才报 DecodeError。
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..errors import DecodeError
from ..types import (
    ActionCommand,
    Click,
    LaunchApp,
    PressBack,
    PressHome,
    Screenshot,
    Scroll,
    ScrollDirection,
    Swipe,
    TypeText,
    Wait,
)


# 思考/推理标签名
REASONING_TAGS = ("think", "thinking", "reason", "reasoning")

# 动作名别名 -> 规范动作名
ACTION_ALIASES = {
    "CLICK": "CLICK",
    "TAP": "CLICK",
    "TYPE": "TYPE",
    "TYPE_TEXT": "TYPE",
    "INPUT": "TYPE",
    "SCROLL": "SCROLL",
    "SWIPE": "SWIPE",
    "WAIT": "WAIT",
    "LAUNCH_APP": "LAUNCH_APP",
    "LAUNCH": "LAUNCH_APP",
    "OPEN_APP": "LAUNCH_APP",
    "PRESS_BACK": "PRESS_BACK",
    "BACK": "PRESS_BACK",
    "PRESS_HOME": "PRESS_HOME",
    "HOME": "PRESS_HOME",
    "SCREENSHOT": "SCREENSHOT",
}

# 字段别名，按优先级排列
FIELD_ALIASES = {
    "target_field": ("field", "targetField", "target_field"),
    "start_x": ("startX", "start_x"),
    "start_y": ("startY", "start_y"),
    "end_x": ("endX", "end_x"),
    "end_y": ("endY", "end_y"),
    "duration_ms": ("duration", "durationMs", "duration_ms", "milliseconds"),
    "package_id": ("package", "packageName", "package_name", "packageId"),
}

# 模型未给出时的默认值
DEFAULT_SCROLL_AMOUNT = 500
DEFAULT_SWIPE = {"start_x": 500, "start_y": 1000, "end_x": 500, "end_y": 500}
DEFAULT_SWIPE_DURATION_MS = 300
DEFAULT_WAIT_MS = 1000

_FENCE_PATTERN = re.compile(r"```[A-Za-z]*\s*")
_SPLIT_XY_PATTERN = re.compile(r'("x"\s*:\s*)(\d+(?:\.\d+)?)\s*,\s*(\d+(?:\.\d+)?)(?=\s*[,}\]])')
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([\]}])")


def strip_reasoning(text: str) -> str:
    """去除思考标签内容

    找到闭合标签时丢弃其之前的全部内容；其余位置成对出现的标签整体删除。
    """
    for tag in REASONING_TAGS:
        close_match = re.search(rf"</{tag}>", text, re.IGNORECASE)
        if close_match:
            text = text[close_match.end():]
        pair = re.compile(rf"<{tag}>.*?</{tag}>", re.IGNORECASE | re.DOTALL)
        text = pair.sub("", text)
    return text.strip()


def strip_code_fences(text: str) -> str:
    """去除 markdown 代码块标记"""
    return _FENCE_PATTERN.sub("", text).strip()


def payload_candidates(text: str) -> List[str]:
    """列出待解析部分，按尝试顺序排列

    优先取最外层数组；对象单独成为候选（包装为单元素数组），
    只有数组整体位于对象内部时对象才排在前面。没有括号时返回原文。
    """
    array_start = text.find("[")
    array_end = text.rfind("]")
    object_start = text.find("{")
    object_end = text.rfind("}")

    array = text[array_start:array_end + 1] if -1 < array_start < array_end else None
    wrapped = "[" + text[object_start:object_end + 1] + "]" if -1 < object_start < object_end else None

    if array and wrapped and object_start < array_start and array_end < object_end:
        candidates = [wrapped, array]
    else:
        candidates = [array, wrapped]
    return [candidate for candidate in candidates if candidate] or [text]


def locate_payload(text: str) -> str:
    """截取首选的待解析部分"""
    return payload_candidates(text)[0]


def repair_split_coordinates(text: str) -> str:
    """修复 "x": 540, 800 -> "x": 540, "y": 800"""
    return _SPLIT_XY_PATTERN.sub(r'\1\2, "y": \3', text)


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_PATTERN.sub(r"\1", text)


def fix_python_literals(text: str) -> str:
    """二次修复：Python 风格字面量、单引号、未加引号的键"""
    text = re.sub(r"\bTrue\b", "true", text)
    text = re.sub(r"\bFalse\b", "false", text)
    text = re.sub(r"\bNone\b", "null", text)
    text = re.sub(r"'([^'\\]*(?:\\.[^'\\]*)*)'", r'"\1"', text)
    text = re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)", r'\1"\2"\3', text)
    return text


def _strip_wrappers(raw_text: str) -> str:
    text = (raw_text or "").strip()
    text = strip_reasoning(text)
    return strip_code_fences(text)


def _repair(text: str) -> str:
    text = repair_split_coordinates(text)
    text = remove_trailing_commas(text)
    return text.strip()


def clean_response(raw_text: str) -> str:
    """执行全部清理步骤，返回首选的待解析文本"""
    return _repair(locate_payload(_strip_wrappers(raw_text)))


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    # NaN 和无穷大不是坐标
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except (ValueError, OverflowError):
            return None
    return None


def _as_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class PlanDecoder:
    """规划结果解码器"""

    def __init__(self):
        self.on_log_callback: Optional[Callable[[str], None]] = None

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def decode(self, raw_text: str) -> List[ActionCommand]:
        """
        解码规划服务返回的文本

        Args:
            raw_text: 规划服务原始文本

        Returns:
            动作命令列表；空列表表示没有后续动作（任务完成信号）

        Raises:
            DecodeError: 修复后仍无法解析为数组
        """
        text = _strip_wrappers(raw_text)
        if not text:
            return []
        candidates = [_repair(candidate) for candidate in payload_candidates(text)]
        if candidates[0] == "[]":
            return []

        elements = self._parse_array(candidates, raw_text)

        commands: List[ActionCommand] = []
        for element in elements:
            if not isinstance(element, dict):
                self._log(f"跳过非对象元素: {str(element)[:80]}")
                continue
            command = self.decode_element(element)
            if command is not None:
                commands.append(command)
        return commands

    def _parse_array(self, candidates: List[str], raw_text: str) -> List[Any]:
        """依次尝试候选，返回第一个解析为数组的结果"""
        error = None
        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                try:
                    data = json.loads(fix_python_literals(candidate))
                except json.JSONDecodeError as e:
                    error = DecodeError(f"无法解析动作数组: {e}", raw_text=raw_text)
                    continue

            if isinstance(data, list):
                return data
            error = DecodeError(f"期望 JSON 数组，实际为 {type(data).__name__}", raw_text=raw_text)
        raise error

    def decode_element(self, obj: Dict[str, Any]) -> Optional[ActionCommand]:
        """解码单个动作对象，无法识别或缺少必填字段时返回 None"""
        action_name = self._read_action(obj)
        if not action_name:
            self._log(f"跳过缺少 action 字段的元素: {str(obj)[:80]}")
            return None

        canonical = ACTION_ALIASES.get(action_name)
        if canonical is None:
            self._log(f"跳过未知动作类型: {action_name}")
            return None

        try:
            command = self._build(canonical, obj)
        except ValidationError as e:
            self._log(f"跳过无效的 {canonical} 动作: {e.errors()[0].get('msg', e)}")
            return None

        if command is None:
            self._log(f"跳过缺少必填字段的 {canonical} 动作")
        return command

    def _read_action(self, obj: Dict[str, Any]) -> str:
        for key, value in obj.items():
            if isinstance(key, str) and key.lower() == "action":
                name = _as_str(value)
                if not name:
                    return ""
                return re.sub(r"[\s\-]+", "_", name.strip()).upper()
        return ""

    def _field(self, obj: Dict[str, Any], name: str) -> Any:
        for alias in FIELD_ALIASES.get(name, (name,)):
            if alias in obj and obj[alias] is not None:
                return obj[alias]
        return None

    def _build(self, canonical: str, obj: Dict[str, Any]) -> Optional[ActionCommand]:
        if canonical == "CLICK":
            return Click(
                x=_as_int(obj.get("x")),
                y=_as_int(obj.get("y")),
                description=_as_str(obj.get("description")),
            )

        if canonical == "TYPE":
            text = _as_str(obj.get("text"))
            if text is None:
                return None
            return TypeText(text=text, target_field=_as_str(self._field(obj, "target_field")))

        if canonical == "SCROLL":
            direction_str = (_as_str(obj.get("direction")) or "DOWN").strip().upper()
            try:
                direction = ScrollDirection(direction_str)
            except ValueError:
                direction = ScrollDirection.DOWN
            amount = _as_int(obj.get("amount"))
            return Scroll(
                direction=direction,
                amount=DEFAULT_SCROLL_AMOUNT if amount is None else amount,
            )

        if canonical == "SWIPE":
            coords = {}
            for name, default in DEFAULT_SWIPE.items():
                value = _as_int(self._field(obj, name))
                coords[name] = default if value is None else value
            duration = _as_int(self._field(obj, "duration_ms"))
            return Swipe(
                duration_ms=DEFAULT_SWIPE_DURATION_MS if duration is None else duration,
                **coords,
            )

        if canonical == "WAIT":
            duration = _as_int(self._field(obj, "duration_ms"))
            return Wait(duration_ms=DEFAULT_WAIT_MS if duration is None else duration)

        if canonical == "LAUNCH_APP":
            package_id = _as_str(self._field(obj, "package_id"))
            if not package_id:
                return None
            return LaunchApp(package_id=package_id.strip())

        if canonical == "PRESS_BACK":
            return PressBack()

        if canonical == "PRESS_HOME":
            return PressHome()

        if canonical == "SCREENSHOT":
            return Screenshot()

        return None


def decode_plan(raw_text: str) -> List[ActionCommand]:
    """便捷函数：使用默认解码器解码"""
    return PlanDecoder().decode(raw_text)
