"""提示词模板"""

from typing import Optional, Sequence

from ..types import ActionCommand


SYSTEM_PROMPT = """You are an Android UI automation assistant with vision capabilities. You can see the current screen screenshot. Given a task, determine the SINGLE next action to take.

CRITICAL JSON FORMAT: For CLICK, you MUST include BOTH "x" AND "y" keys.
CORRECT: {"action": "CLICK", "x": 540, "y": 800, "description": "search"}
WRONG: {"action": "CLICK", "x": 540, 800}

Available Actions:
1. CLICK - {"action": "CLICK", "x": INT, "y": INT, "description": "element name"}
2. TYPE - {"action": "TYPE", "text": "text to enter", "field": "optional field name"}
3. SCROLL - {"action": "SCROLL", "direction": "UP|DOWN|LEFT|RIGHT", "amount": 500}
4. SWIPE - {"action": "SWIPE", "startX": INT, "startY": INT, "endX": INT, "endY": INT, "duration": 300}
5. WAIT - {"action": "WAIT", "duration": 1000}
6. LAUNCH_APP - {"action": "LAUNCH_APP", "package": "com.example.app"}
7. PRESS_BACK - {"action": "PRESS_BACK"}
8. PRESS_HOME - {"action": "PRESS_HOME"}
9. SCREENSHOT - {"action": "SCREENSHOT"}

Common Packages: com.netease.cloudmusic, com.tencent.mm, com.eg.android.AlipayGphone, com.ss.android.ugc.aweme, tv.danmaku.bili

IMPORTANT RULES:
1. Look at "Actions already executed" - DO NOT repeat the same action if screen hasn't changed
2. If an action was executed but screen looks the same, try a DIFFERENT approach:
   - Different coordinates
   - SCROLL to find the element
   - PRESS_BACK and try another path
3. Return [] if task is complete OR if you're stuck with no valid next action
4. Analyze the screenshot carefully for the current state

TASK COMPLETION - Return empty array [] when:
- The goal has been achieved
- The desired content is visible
- You are stuck and cannot proceed (avoid infinite loops)

Output: Return ONE action as JSON array [{"action": ...}] or [] if done/stuck"""


def build_next_action_prompt(goal: str, screen_context: Optional[str] = None,
                             history: Optional[str] = None) -> str:
    """构建"下一步动作"用户提示词"""
    task = f"{goal}\n\n{history}" if history else goal

    lines = [f"Task: {task}"]
    if screen_context and screen_context.strip():
        lines.append(f"\nCurrent Screen State:\n{screen_context}")
    else:
        lines.append("\nNo screen context available - assume starting from home screen.")
    lines.append("\nWhat is the SINGLE next action to take? Return [] if the task is complete.")
    return "\n".join(lines)


def build_action_history(commands: Sequence[ActionCommand],
                         last_failure: Optional[str] = None) -> Optional[str]:
    """
    渲染已执行动作历史

    只包含执行成功的命令；上一步失败时附加一行说明，提示规划服务换一种方式。
    没有任何内容时返回 None。
    """
    parts = []
    if commands:
        lines = ["Actions already executed:"]
        for i, command in enumerate(commands, 1):
            lines.append(f"{i}. {command.to_prompt_json()}")
        parts.append("\n".join(lines))
    if last_failure:
        parts.append(f"Previous action failed: {last_failure}\nTry a different approach.")
    if not parts:
        return None
    return "\n\n".join(parts)
