"""屏幕分析器 - 将 UI 树渲染为提供给规划服务的文本描述"""

from typing import List, Optional

from ..device.backend import CapabilitySlot
from ..types import UINode


MAX_TEXT_LENGTH = 50


def _is_meaningful(node: UINode) -> bool:
    has_content = bool(node.text.strip() or node.content_desc.strip())
    return has_content or node.clickable or node.editable or node.scrollable


def describe_node(node: UINode, depth: int = 0) -> str:
    """生成单个元素的描述行"""
    parts = ["  " * depth + f"[{node.short_class}]"]

    text = node.text.strip()[:MAX_TEXT_LENGTH]
    desc = node.content_desc.strip()[:MAX_TEXT_LENGTH]
    if text:
        parts.append(f'text="{text}"')
    if desc and desc != text:
        parts.append(f'desc="{desc}"')
    if node.resource_id:
        parts.append(f"id:{node.short_id}")

    attrs = []
    if node.clickable:
        attrs.append("clickable")
    if node.editable:
        attrs.append("editable")
    if node.scrollable:
        attrs.append("scrollable")
    if attrs:
        parts.append(f"[{', '.join(attrs)}]")

    l, t, r, b = node.bounds
    parts.append(f"bounds=[{l},{t}][{r},{b}]")
    return " ".join(parts)


def render_screen(tree: UINode, max_elements: int = 150) -> str:
    """渲染 UI 树，只保留有内容或可交互的节点"""
    lines = ["Screen Elements:"]
    count = 0
    for node, depth in tree.iter_with_depth():
        if not _is_meaningful(node):
            continue
        count += 1
        if count <= max_elements:
            lines.append(describe_node(node, depth))

    if count == 0:
        lines.append("(界面无可交互元素)")
    elif count > max_elements:
        lines.append(f"... 还有 {count - max_elements} 个元素")
    return "\n".join(lines)


class ScreenAnalyzer:
    """屏幕分析器"""

    def __init__(self, capability: CapabilitySlot, max_elements: int = 150):
        self.capability = capability
        self.max_elements = max_elements

    def current_tree(self) -> Optional[UINode]:
        backend = self.capability.get()
        if backend is None:
            return None
        return backend.get_ui_tree()

    def analyze_current_screen(self) -> Optional[str]:
        """返回当前屏幕的文本描述，设备未连接或无法获取界面时返回 None"""
        tree = self.current_tree()
        if tree is None:
            return None
        return render_screen(tree, self.max_elements)

    def get_interactive_elements(self) -> List[UINode]:
        tree = self.current_tree()
        if tree is None:
            return []
        return [
            node for node in tree.iter_preorder()
            if node.clickable or node.editable or node.scrollable
        ]
