"""uiautomator XML -> UINode 树"""

import re
from typing import Optional, Tuple
from xml.etree import ElementTree

from ..types import UINode


_BOUNDS_PATTERN = re.compile(r"-?\d+")

# 这些类名视为可编辑输入框
EDITABLE_CLASSES = ("EditText", "AutoCompleteTextView", "SearchView")


def parse_bounds(bounds_str: str) -> Tuple[int, int, int, int]:
    """解析 "[l,t][r,b]" 格式的边界"""
    match = _BOUNDS_PATTERN.findall(bounds_str or "")
    if len(match) == 4:
        return tuple(int(x) for x in match)  # type: ignore[return-value]
    return (0, 0, 0, 0)


def _is_true(attrib: dict, key: str) -> bool:
    return attrib.get(key, "false") == "true"


def _to_node(element: ElementTree.Element) -> UINode:
    attrib = element.attrib
    class_name = attrib.get("class", "")
    node = UINode(
        text=attrib.get("text", ""),
        content_desc=attrib.get("content-desc", ""),
        resource_id=attrib.get("resource-id", ""),
        class_name=class_name,
        package=attrib.get("package", ""),
        clickable=_is_true(attrib, "clickable") or _is_true(attrib, "long-clickable"),
        editable=class_name.endswith(EDITABLE_CLASSES),
        focused=_is_true(attrib, "focused"),
        scrollable=_is_true(attrib, "scrollable"),
        enabled=attrib.get("enabled", "true") == "true",
        bounds=parse_bounds(attrib.get("bounds", "")),
    )
    node.children = [_to_node(child) for child in element if child.tag == "node"]
    return node


def parse_ui_hierarchy(xml_text: str) -> Optional[UINode]:
    """
    解析 uiautomator dump 输出

    hierarchy 下只有一个窗口节点时直接返回；多个时包一层合成根节点，
    根节点边界取所有窗口的并集（用于推算屏幕尺寸）。
    解析失败或没有节点时返回 None。
    """
    if not xml_text or not xml_text.strip():
        return None

    # dump 输出前可能带有 "UI hierchary dumped to" 等提示行
    start = xml_text.find("<")
    try:
        root = ElementTree.fromstring(xml_text[start:] if start > 0 else xml_text)
    except ElementTree.ParseError:
        return None

    if root.tag == "node":
        return _to_node(root)

    windows = [_to_node(child) for child in root if child.tag == "node"]
    if not windows:
        return None
    if len(windows) == 1:
        return windows[0]

    left = min(w.bounds[0] for w in windows)
    top = min(w.bounds[1] for w in windows)
    right = max(w.bounds[2] for w in windows)
    bottom = max(w.bounds[3] for w in windows)
    return UINode(class_name="hierarchy", bounds=(left, top, right, bottom), children=windows)
