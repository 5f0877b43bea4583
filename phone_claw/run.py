#!/usr/bin/env python3
"""
命令行运行入口

使用示例:
    phone-claw "打开设置，查看 WLAN 列表"
    python -m phone_claw.run --verbose --provider claude "打开微信"
    python -m phone_claw.run --task-file tasks.yaml
"""

import argparse
import sys
from dataclasses import dataclass
from typing import Any, List, Optional

import yaml

from .action.executor import ActionExecutor
from .config.settings import PROVIDERS, Settings, get_settings
from .device.adb_backend import AdbDeviceBackend
from .device.adb_helper import ADBHelper
from .device.backend import CapabilitySlot
from .device.screenshot import AdbScreenshotProvider
from .errors import ConfigurationError
from .observation.screen_analyzer import ScreenAnalyzer
from .orchestrator import PlanningOrchestrator, RunConfig
from .providers.factory import create_provider
from .types import TaskRun, TaskStatus
from .verification.advisor import VerificationAdvisor


@dataclass
class TaskSpec:
    """任务文件中的单个任务"""
    goal: str
    max_steps: Optional[int] = None


def load_task_file(path: str) -> List[TaskSpec]:
    """
    读取 YAML 任务文件

    支持三种写法：顶层 tasks 列表、顶层列表、或单个 goal。
    列表元素可以是字符串，也可以是包含 goal / max_steps 的映射。
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict):
        items: Any = data.get("tasks", [data] if "goal" in data else [])
    elif isinstance(data, list):
        items = data
    else:
        raise ConfigurationError(f"任务文件格式无效: {path}")

    tasks = []
    for item in items:
        if isinstance(item, str) and item.strip():
            tasks.append(TaskSpec(goal=item.strip()))
        elif isinstance(item, dict) and str(item.get("goal", "")).strip():
            max_steps = item.get("max_steps")
            tasks.append(TaskSpec(
                goal=str(item["goal"]).strip(),
                max_steps=int(max_steps) if max_steps is not None else None,
            ))
    if not tasks:
        raise ConfigurationError(f"任务文件中没有任务: {path}")
    return tasks


def build_orchestrator(settings: Settings, slot: CapabilitySlot) -> PlanningOrchestrator:
    """按配置组装编排器，设备后端放入 slot"""
    provider = create_provider(settings)

    adb = ADBHelper(adb_path=settings.adb_path or None, device_id=settings.device_id)
    if not adb.get_adb_path():
        raise ConfigurationError("未找到 adb，请安装 Android platform-tools 或设置 adb_path")

    slot.attach(AdbDeviceBackend(adb))
    executor = ActionExecutor(slot, pre_action_delay=settings.action_delay)
    screenshot_provider = None
    if settings.enable_screenshots:
        screenshot_provider = AdbScreenshotProvider(adb, max_side=settings.screenshot_max_side)

    advisor = VerificationAdvisor(provider) if settings.verify_after_step else None
    return PlanningOrchestrator(
        provider=provider,
        executor=executor,
        screen_analyzer=ScreenAnalyzer(slot),
        screenshot_provider=screenshot_provider,
        advisor=advisor,
        verbose=settings.verbose,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Phone Claw - 逐步决策的手机自动化 Agent")
    parser.add_argument("task", nargs="?", help="任务描述")
    parser.add_argument("--settings", help="配置文件路径 (默认: ~/.phone_claw/config/settings.json)")
    parser.add_argument("--task-file", help="YAML 任务文件")
    parser.add_argument("--max-steps", type=int, help="最大步数 (最少 5)")
    parser.add_argument("--step-delay", type=float, help="每步之间的等待秒数")
    parser.add_argument("--provider", choices=PROVIDERS, help="规划服务")
    parser.add_argument("--device-id", help="ADB 设备序列号")
    parser.add_argument("--adb-path", help="adb 可执行文件路径")
    parser.add_argument("--no-screenshot", action="store_true", help="不发送截图")
    parser.add_argument("--verify", action="store_true", help="每步成功后验证任务是否完成")
    parser.add_argument("--verbose", "-v", action="store_true", help="输出详细日志")
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.step_delay is not None:
        settings.step_delay = args.step_delay
    if args.provider:
        settings.provider = args.provider
    if args.device_id:
        settings.device_id = args.device_id
    if args.adb_path:
        settings.adb_path = args.adb_path
    if args.no_screenshot:
        settings.enable_screenshots = False
    if args.verify:
        settings.verify_after_step = True
    if args.verbose:
        settings.verbose = True
    return settings


def print_result(run: TaskRun):
    print(f"\n{'=' * 50}")
    print(f"任务: {run.goal}")
    print(f"状态: {run.status.value} ({run.finish_reason.value if run.finish_reason else '-'})")
    print(f"消息: {run.message}")
    print(f"执行步数: {run.step_index}  成功动作: {len(run.history)}")
    if run.last_error:
        print(f"最后错误: {run.last_error}")
    print(f"耗时: {run.elapsed_seconds:.1f}s")
    print(f"{'=' * 50}")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if not args.task and not args.task_file:
        print("请提供任务描述或 --task-file", file=sys.stderr)
        return 2

    settings = apply_overrides(get_settings(args.settings), args)

    try:
        tasks = load_task_file(args.task_file) if args.task_file else [TaskSpec(goal=args.task)]
        slot = CapabilitySlot()
        orchestrator = build_orchestrator(settings, slot)
    except (ConfigurationError, OSError, yaml.YAMLError) as e:
        print(f"配置错误: {e}", file=sys.stderr)
        return 2

    all_completed = True
    try:
        for spec in tasks:
            max_steps = spec.max_steps or args.max_steps
            config = RunConfig.from_settings(settings, max_steps=max_steps)
            print(f"\n开始执行任务: {spec.goal}\n")
            try:
                result = orchestrator.run(spec.goal, config)
            except KeyboardInterrupt:
                orchestrator.cancel()
                print("\n已中断")
                return 130
            print_result(result)
            if result.status != TaskStatus.COMPLETED:
                all_completed = False
    finally:
        backend = slot.get()
        slot.detach()
        if isinstance(backend, AdbDeviceBackend):
            backend.close()

    return 0 if all_completed else 1


if __name__ == "__main__":
    sys.exit(main())
