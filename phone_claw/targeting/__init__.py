"""元素定位"""

from .element_resolver import ElementResolver, build_search_terms

__all__ = ["ElementResolver", "build_search_terms"]
