"""屏幕观察"""

from .screen_analyzer import ScreenAnalyzer, render_screen

__all__ = ["ScreenAnalyzer", "render_screen"]
