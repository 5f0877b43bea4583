"""
规划编排器 - 逐步决策的执行循环

执行流程（每轮只执行一个动作）：
1. 采集当前屏幕描述和截图
2. 携带目标和已执行动作历史，请求规划服务给出下一步
3. 解码回复；空数组表示任务完成
4. 只执行第一个动作，根据结果更新历史和连续失败计数
5. 等待界面稳定后进入下一轮

结束条件：规划服务确认完成、验证器判断完成、步数用尽（视为完成）、
连续失败达到阈值、致命执行错误、外部取消。
"""

import threading
import time
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .action.executor import ActionExecutor
from .errors import DecodeError, ProviderError, RetryExhausted, TaskCancelled
from .observation.screen_analyzer import ScreenAnalyzer
from .parsing.plan_decoder import PlanDecoder
from .providers.base import PlanningProvider
from .providers.prompts import build_action_history
from .types import ActionCommand, FinishReason, TaskRun, TaskStatus
from .verification.advisor import VerificationAdvisor


MIN_STEPS = 5
MAX_CONSECUTIVE_FAILURES = 3


@dataclass(frozen=True)
class RunConfig:
    """单次任务的执行参数，任务开始时确定，运行期间不变"""
    max_steps: int = 20
    inter_step_delay: float = 1.0
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    screenshot_enabled: bool = True
    verify_after_step: bool = False

    def __post_init__(self):
        if self.max_steps < MIN_STEPS:
            object.__setattr__(self, "max_steps", MIN_STEPS)
        if self.inter_step_delay < 0:
            object.__setattr__(self, "inter_step_delay", 0.0)
        if self.max_consecutive_failures < 1:
            object.__setattr__(self, "max_consecutive_failures", 1)

    @classmethod
    def from_settings(cls, settings, max_steps: Optional[int] = None) -> "RunConfig":
        return cls(
            max_steps=max_steps if max_steps is not None else settings.max_steps,
            inter_step_delay=settings.step_delay,
            screenshot_enabled=settings.enable_screenshots,
            verify_after_step=settings.verify_after_step,
        )


class _ActiveRun:
    """正在执行的任务：取消信号、结束信号和最终快照"""

    def __init__(self, run: TaskRun):
        self.run = run
        self.cancel_event = threading.Event()
        self.done = threading.Event()
        self.final_state: Optional[TaskRun] = None


class PlanningOrchestrator:
    """
    规划编排器

    同一时刻只有一个任务在运行，启动新任务会先取消旧任务。
    状态快照和日志只由执行线程写入，观察者读取已发布的副本。
    """

    def __init__(
        self,
        provider: PlanningProvider,
        executor: ActionExecutor,
        screen_analyzer: Optional[ScreenAnalyzer] = None,
        screenshot_provider=None,
        decoder: Optional[PlanDecoder] = None,
        advisor: Optional[VerificationAdvisor] = None,
        verbose: bool = False,
    ):
        self.provider = provider
        self.executor = executor
        self.screen_analyzer = screen_analyzer
        self.screenshot_provider = screenshot_provider
        self.decoder = decoder or PlanDecoder()
        self.advisor = advisor
        self.verbose = verbose

        # 回调
        self.on_log_callback: Optional[Callable[[str], None]] = None
        self.on_progress_callback: Optional[Callable[[int, int, ActionCommand], None]] = None
        self.on_state_callback: Optional[Callable[[TaskRun], None]] = None

        for component in (provider, executor, self.decoder, advisor, screenshot_provider):
            if component is not None and hasattr(component, "on_log_callback") \
                    and component.on_log_callback is None:
                component.on_log_callback = self._log

        self._state: Optional[TaskRun] = None
        self._logs: Tuple[str, ...] = ()
        self._active: Optional[_ActiveRun] = None
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    # ------------------------------------------------------------------
    # 对外接口

    @property
    def state(self) -> Optional[TaskRun]:
        """当前任务的最新快照"""
        return self._state

    @property
    def logs(self) -> List[str]:
        return list(self._logs)

    @property
    def is_running(self) -> bool:
        state = self._state
        return state is not None and state.status == TaskStatus.RUNNING

    def run(self, goal: str, config: Optional[RunConfig] = None) -> TaskRun:
        """在当前线程执行任务，返回本任务的最终快照"""
        config = config or RunConfig()
        with self._start_lock:
            self._stop_previous()
            active = self._prepare(goal, config)
        self._execute(active, config)
        return active.final_state

    def start(self, goal: str, config: Optional[RunConfig] = None) -> TaskRun:
        """在后台线程执行任务，立即返回初始快照"""
        config = config or RunConfig()
        with self._start_lock:
            self._stop_previous()
            active = self._prepare(goal, config)
            self._thread = threading.Thread(
                target=self._execute,
                args=(active, config),
                name=f"phone-claw-{active.run.run_id}",
                daemon=True,
            )
            self._thread.start()
        return self._state

    def cancel(self):
        """请求取消，在下一个检查点生效"""
        active = self._active
        if active is not None:
            active.cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """等待当前任务结束（前台或后台），返回是否已结束"""
        active = self._active
        if active is None:
            return True
        return active.done.wait(timeout)

    def reset(self):
        """取消当前任务并清空状态和日志"""
        with self._start_lock:
            self._stop_previous()
            self._active = None
            self._state = None
            self._logs = ()

    # ------------------------------------------------------------------
    # 执行循环

    def _stop_previous(self):
        # 旧任务可能在其它线程的 run() 中执行，取消后等它发布最终状态
        active = self._active
        if active is not None and not active.done.is_set():
            active.cancel_event.set()
            active.done.wait()
        thread = self._thread
        if thread is not None:
            thread.join()
        self._thread = None

    def _prepare(self, goal: str, config: RunConfig) -> _ActiveRun:
        self._logs = ()
        active = _ActiveRun(TaskRun(goal=goal, max_steps=config.max_steps))
        self._active = active
        self._publish(active.run)
        return active

    def _execute(self, active: _ActiveRun, config: RunConfig):
        run, cancel_event = active.run, active.cancel_event
        try:
            self._loop(run, config, cancel_event)
        except TaskCancelled:
            self._finish_cancelled(run)
        except Exception as e:
            if self.verbose:
                traceback.print_exc()
            self._finish(run, TaskStatus.FAILED, FinishReason.ERROR, f"执行异常: {e}",
                         cancel_event, error=str(e))
        finally:
            active.final_state = run.snapshot()
            active.done.set()

    def _loop(self, run: TaskRun, config: RunConfig, cancel_event: threading.Event):
        run.status = TaskStatus.RUNNING
        self._log(f"开始任务: {run.goal}")
        self._publish(run)

        last_failure: Optional[str] = None

        while run.step_index < config.max_steps:
            self._checkpoint(cancel_event)

            step = run.step_index + 1
            self._log(f"步骤 {step}/{config.max_steps}: 请求下一步动作")

            # 1. 规划
            try:
                commands = self._plan_next(run, config, last_failure)
            except (ProviderError, DecodeError) as e:
                if self._register_failure(run, f"规划失败: {e}", config, cancel_event):
                    return
                self._publish(run)
                self._pause(config, cancel_event)
                continue

            # 规划请求返回后的检查点
            self._checkpoint(cancel_event)

            # 2. 空数组表示任务完成
            if not commands:
                self._finish(run, TaskStatus.COMPLETED, FinishReason.CONFIRMED, "任务完成", cancel_event)
                return

            command = commands[0]
            if len(commands) > 1:
                self._log(f"规划返回 {len(commands)} 个动作，只执行第一个")

            # 3. 执行
            self._log(f"执行: {command.describe()}")
            if self.on_progress_callback:
                self.on_progress_callback(step, config.max_steps, command)

            outcome = self.executor.execute(command)
            run.step_index += 1

            if outcome.ok:
                run.history.append(command)
                run.consecutive_failures = 0
                last_failure = None
                self._log(f"✓ {outcome.message}")

                if config.verify_after_step and self.advisor is not None:
                    if self._verify(run, command, config):
                        self._finish(run, TaskStatus.COMPLETED, FinishReason.VERIFIED,
                                     "任务完成（验证通过）", cancel_event)
                        return
            else:
                last_failure = f"{command.describe()} - {outcome.message}"
                self._log(f"✗ {outcome.message}")
                if outcome.fatal:
                    self._finish(run, TaskStatus.FAILED, FinishReason.FATAL_ERROR,
                                 f"不可恢复的错误: {outcome.message}", cancel_event,
                                 error=outcome.message)
                    return
                if self._register_failure(run, outcome.message, config, cancel_event):
                    return

            self._publish(run)
            self._pause(config, cancel_event)

        self._finish(run, TaskStatus.COMPLETED, FinishReason.STEP_LIMIT,
                     "Completed (max steps reached)", cancel_event)

    def _plan_next(self, run: TaskRun, config: RunConfig,
                   last_failure: Optional[str]) -> List[ActionCommand]:
        screen_context = self._capture_screen_context()
        screenshot = self._capture_screenshot() if config.screenshot_enabled else None
        raw = self.provider.plan_next(
            run.goal,
            screen_context=screen_context,
            screenshot_base64=screenshot,
            history=build_action_history(run.history, last_failure),
        )
        return self.decoder.decode(raw)

    def _verify(self, run: TaskRun, command: ActionCommand, config: RunConfig) -> bool:
        screen_context = self._capture_screen_context()
        screenshot = self._capture_screenshot() if config.screenshot_enabled else None
        result = self.advisor.verify(run.goal, command, screen_context, screenshot)
        self._log(f"验证: {result.reason}")
        return result.is_task_complete

    def _capture_screen_context(self) -> Optional[str]:
        if self.screen_analyzer is None:
            return None
        try:
            return self.screen_analyzer.analyze_current_screen()
        except Exception as e:
            self._log(f"获取屏幕描述失败: {e}")
            return None

    def _capture_screenshot(self) -> Optional[str]:
        if self.screenshot_provider is None:
            return None
        try:
            return self.screenshot_provider.capture_and_encode()
        except Exception as e:
            self._log(f"截图失败: {e}")
            return None

    def _register_failure(self, run: TaskRun, error: str, config: RunConfig,
                          cancel_event: threading.Event) -> bool:
        """累加连续失败，达到阈值时结束任务并返回 True"""
        run.consecutive_failures += 1
        run.last_error = error
        self._log(f"失败 ({run.consecutive_failures}/{config.max_consecutive_failures}): {error}")

        if run.consecutive_failures < config.max_consecutive_failures:
            return False

        exhausted = RetryExhausted(run.consecutive_failures, error)
        self._finish(run, TaskStatus.FAILED, FinishReason.RETRY_EXHAUSTED, str(exhausted),
                     cancel_event, error=error)
        return True

    @staticmethod
    def _checkpoint(cancel_event: threading.Event):
        if cancel_event.is_set():
            raise TaskCancelled("任务已取消")

    def _pause(self, config: RunConfig, cancel_event: threading.Event):
        if config.inter_step_delay > 0:
            cancel_event.wait(config.inter_step_delay)

    def _finish_cancelled(self, run: TaskRun):
        run.status = TaskStatus.CANCELLED
        run.finish_reason = FinishReason.CANCELLED
        run.message = "任务已取消"
        run.finished_at = time.time()
        self._log("任务已取消")
        self._publish(run)

    def _finish(self, run: TaskRun, status: TaskStatus, reason: FinishReason, message: str,
                cancel_event: threading.Event, error: Optional[str] = None):
        # 同一检查点上取消优先于失败
        if status == TaskStatus.FAILED and cancel_event.is_set():
            if error:
                run.last_error = error
            self._finish_cancelled(run)
            return

        run.status = status
        run.finish_reason = reason
        run.message = message
        if error:
            run.last_error = error
        run.finished_at = time.time()
        self._log(message)
        self._publish(run)

    # ------------------------------------------------------------------
    # 发布

    def _publish(self, run: TaskRun):
        run.touch()
        snapshot = run.snapshot()
        self._state = snapshot
        if self.on_state_callback:
            self.on_state_callback(snapshot)

    def _log(self, message: str):
        entry = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        self._logs = self._logs + (entry,)
        if self.on_log_callback:
            self.on_log_callback(entry)
        if self.verbose:
            print(entry)
