"""元素定位器 - 根据文字描述在 UI 树中查找目标元素"""

import re
from typing import Callable, Dict, List, Optional, Set

from ..types import UINode


# 常用界面词汇的多语言对照（英文 -> 中文），双向生效
UI_SYNONYMS: Dict[str, List[str]] = {
    "search": ["搜索", "搜尋", "查找"],
    "settings": ["设置", "設置", "设定"],
    "back": ["返回", "后退"],
    "home": ["首页", "主页"],
    "profile": ["我的", "个人", "我"],
    "menu": ["菜单", "更多"],
    "play": ["播放"],
    "pause": ["暂停"],
    "next": ["下一首", "下一个"],
    "previous": ["上一首", "上一个"],
    "share": ["分享"],
    "like": ["喜欢", "收藏", "赞"],
    "comment": ["评论"],
    "download": ["下载"],
    "close": ["关闭", "关"],
    "cancel": ["取消"],
    "confirm": ["确定", "确认"],
    "ok": ["确定", "好的"],
    "send": ["发送"],
    "input": ["输入"],
    "music": ["音乐", "歌曲"],
    "video": ["视频"],
    "photo": ["照片", "图片"],
}


def _build_synonym_index(table: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """构建双向索引：任一词都映射到其所在全部同义组的成员"""
    groups: Dict[str, Set[str]] = {}
    for key, translations in table.items():
        members = {key.lower(), *(t.lower() for t in translations)}
        for member in members:
            groups.setdefault(member, set()).update(members)

    index: Dict[str, List[str]] = {}
    for term, members in groups.items():
        index[term] = sorted(members - {term})
    return index


_SYNONYM_INDEX = _build_synonym_index(UI_SYNONYMS)
_TOKEN_SPLIT = re.compile(r"[\s_\-]+")


def build_search_terms(description: str) -> List[str]:
    """
    生成搜索词

    完整描述 + 每个词的同义词 + （多词时）各个单词，去重并保持顺序。
    """
    normalized = description.strip().lower()
    if not normalized:
        return []

    terms = [normalized]
    words = [w for w in _TOKEN_SPLIT.split(normalized) if w]

    for word in [normalized] + words:
        terms.extend(_SYNONYM_INDEX.get(word, []))

    if len(words) > 1:
        terms.extend(words)

    seen = set()
    unique = []
    for term in terms:
        if term and term not in seen:
            seen.add(term)
            unique.append(term)
    return unique


class ElementResolver:
    """
    元素定位器

    深度优先先序遍历 UI 树：
    1. 匹配且可点击的节点立即返回（越浅、越靠前越优先）
    2. 只有不可点击的匹配时，返回第一个匹配（由其祖先处理点击）
    3. 无匹配返回 None
    """

    def __init__(self):
        self.on_log_callback: Optional[Callable[[str], None]] = None

    def _log(self, message: str):
        if self.on_log_callback:
            self.on_log_callback(message)

    def resolve(self, description: str, tree: Optional[UINode]) -> Optional[UINode]:
        if tree is None or not description:
            return None

        terms = build_search_terms(description)
        if not terms:
            return None

        fallback: Optional[UINode] = None
        for node in tree.iter_preorder():
            if not self.matches(node, terms):
                continue
            if node.clickable:
                self._log(f"定位到可点击元素 '{node.display_name}' @ {node.center}")
                return node
            if fallback is None:
                fallback = node

        if fallback is not None:
            self._log(f"仅找到不可点击元素 '{fallback.display_name}'，使用其位置")
        else:
            self._log(f"未找到元素: {description}")
        return fallback

    @staticmethod
    def matches(node: UINode, terms: List[str]) -> bool:
        """任一搜索词是文本、描述或资源 ID 的子串（忽略大小写）"""
        haystacks = (
            node.text.lower(),
            node.content_desc.lower(),
            node.resource_id.lower(),
        )
        return any(term in hay for term in terms for hay in haystacks if hay)
