"""测试规划编排器的执行循环"""

import re
import threading

from phone_claw.action.executor import ActionExecutor
from phone_claw.device.backend import CapabilitySlot
from phone_claw.errors import ProviderError
from phone_claw.observation.screen_analyzer import ScreenAnalyzer
from phone_claw.orchestrator import MIN_STEPS, PlanningOrchestrator, RunConfig
from phone_claw.providers.base import PlanningProvider
from phone_claw.types import FinishReason, PressBack, PressHome, TaskStatus
from phone_claw.verification.advisor import VerificationAdvisor

from .fakes import FakeBackend, FakeProvider, make_tree


BACK = '[{"action": "PRESS_BACK"}]'
HOME = '[{"action": "PRESS_HOME"}]'
CLICK = '[{"action": "CLICK", "x": 100, "y": 200}]'
DONE = "[]"

FAST = RunConfig(inter_step_delay=0)


class FakeScreenshots:
    def __init__(self):
        self.on_log_callback = None
        self.count = 0

    def capture_and_encode(self):
        self.count += 1
        return "iVBORw0KGgo="


def make_orchestrator(replies, backend=None, **kwargs):
    backend = backend or FakeBackend(make_tree())
    slot = CapabilitySlot()
    slot.attach(backend)
    provider = FakeProvider(replies)
    executor = ActionExecutor(slot, pre_action_delay=0, sleep=lambda s: None)
    orchestrator = PlanningOrchestrator(provider, executor, **kwargs)
    return orchestrator, provider, backend


def test_empty_plan_completes():
    """测试：规划服务返回空数组即完成"""
    orchestrator, provider, _ = make_orchestrator([DONE])

    run = orchestrator.run("打开设置", FAST)

    assert run.status == TaskStatus.COMPLETED
    assert run.finish_reason == FinishReason.CONFIRMED
    assert not run.is_step_limit_completion
    assert provider.call_count == 1
    assert run.finished_at is not None


def test_step_limit_is_completion_not_failure():
    """测试：步数用尽视为完成（步数上限类型）"""
    orchestrator, provider, backend = make_orchestrator([BACK])

    run = orchestrator.run("一直返回", RunConfig(max_steps=5, inter_step_delay=0))

    assert run.status == TaskStatus.COMPLETED
    assert run.finish_reason == FinishReason.STEP_LIMIT
    assert run.is_step_limit_completion
    assert run.message == "Completed (max steps reached)"
    assert run.step_index == 5
    assert len(run.history) == 5
    assert provider.call_count == 5
    assert backend.names().count("back") == 5


def test_max_steps_floor():
    """测试：最大步数不低于下限"""
    assert RunConfig(max_steps=2).max_steps == MIN_STEPS
    assert RunConfig(max_steps=30).max_steps == 30
    assert RunConfig().max_consecutive_failures == 3


def test_three_execution_failures_fail_run():
    """测试：连续三次执行失败，任务失败（即使还有步数）"""
    backend = FakeBackend(make_tree())
    backend.tap_result = False
    orchestrator, provider, _ = make_orchestrator([CLICK], backend=backend)

    run = orchestrator.run("点击", RunConfig(max_steps=20, inter_step_delay=0))

    assert run.status == TaskStatus.FAILED
    assert run.finish_reason == FinishReason.RETRY_EXHAUSTED
    assert run.consecutive_failures == 3
    assert run.step_index == 3
    assert run.history == []
    assert provider.call_count == 3
    assert "连续失败 3 次" in run.message


def test_provider_errors_count_toward_threshold():
    """测试：规划服务错误计入连续失败，且不推进步数"""
    orchestrator, provider, backend = make_orchestrator([ProviderError("timeout")])

    run = orchestrator.run("打开设置", FAST)

    assert run.status == TaskStatus.FAILED
    assert run.finish_reason == FinishReason.RETRY_EXHAUSTED
    assert run.step_index == 0
    assert provider.call_count == 3
    assert "timeout" in run.last_error
    assert backend.calls == []


def test_decode_errors_count_toward_threshold():
    """测试：解码失败计入连续失败"""
    orchestrator, provider, _ = make_orchestrator(["I don't know"])

    run = orchestrator.run("打开设置", FAST)

    assert run.status == TaskStatus.FAILED
    assert provider.call_count == 3


def test_success_resets_failure_counter():
    """测试：成功后连续失败计数清零"""
    replies = [ProviderError("a"), "garbage", BACK, ProviderError("b"), "garbage", DONE]
    orchestrator, provider, _ = make_orchestrator(replies)

    run = orchestrator.run("返回", FAST)

    assert run.status == TaskStatus.COMPLETED
    assert run.finish_reason == FinishReason.CONFIRMED
    assert run.history == [PressBack()]
    assert run.step_index == 1
    assert run.consecutive_failures == 2
    assert provider.call_count == 6


def test_failed_command_kept_out_of_history():
    """测试：失败的动作不进入历史，下一次规划会得到失败说明"""
    backend = FakeBackend(make_tree())
    backend.tap_result = False
    orchestrator, provider, _ = make_orchestrator([CLICK, DONE], backend=backend)

    run = orchestrator.run("点击", FAST)

    assert run.status == TaskStatus.COMPLETED
    assert run.history == []
    second = provider.requests[1]["history"]
    assert "Previous action failed" in second
    assert "Actions already executed" not in second


def test_history_passed_to_provider():
    """测试：已执行动作按顺序回注到提示词"""
    orchestrator, provider, _ = make_orchestrator([BACK, HOME, DONE])

    run = orchestrator.run("回到主页", FAST)

    assert run.history == [PressBack(), PressHome()]
    assert provider.requests[0]["history"] is None
    assert provider.requests[2]["history"] == (
        "Actions already executed:\n"
        '1. {"action": "PRESS_BACK"}\n'
        '2. {"action": "PRESS_HOME"}'
    )


def test_fatal_failure_ends_run_immediately():
    """测试：致命失败立即结束任务"""
    backend = FakeBackend(make_tree())
    backend.launch_result = False
    launch = '[{"action": "LAUNCH_APP", "package": "com.not.exist"}]'
    orchestrator, provider, _ = make_orchestrator([launch], backend=backend)

    run = orchestrator.run("打开应用", FAST)

    assert run.status == TaskStatus.FAILED
    assert run.finish_reason == FinishReason.FATAL_ERROR
    assert provider.call_count == 1


def test_only_first_command_is_executed():
    """测试：一次返回多个动作时只执行第一个"""
    both = '[{"action": "PRESS_BACK"}, {"action": "PRESS_HOME"}]'
    orchestrator, _, backend = make_orchestrator([both, DONE])

    run = orchestrator.run("返回", FAST)

    assert backend.names() == ["back"]
    assert run.history == [PressBack()]
    assert any("只执行第一个" in line for line in orchestrator.logs)


def test_cancel_during_provider_call():
    """测试：规划请求进行中取消，请求返回后在下一个检查点取消，不再请求"""
    in_flight = threading.Event()
    release = threading.Event()

    def slow_reply():
        in_flight.set()
        release.wait(5)
        return BACK

    orchestrator, provider, backend = make_orchestrator([slow_reply])
    orchestrator.start("返回", FAST)

    assert in_flight.wait(5)
    orchestrator.cancel()
    assert orchestrator.state.status == TaskStatus.RUNNING
    release.set()
    assert orchestrator.wait(5)

    run = orchestrator.state
    assert run.status == TaskStatus.CANCELLED
    assert run.finish_reason == FinishReason.CANCELLED
    assert provider.call_count == 1
    assert backend.calls == []
    assert "任务已取消" in orchestrator.logs[-1]


def test_cancel_takes_precedence_over_failure():
    """测试：同一检查点上取消优先于失败"""
    holder = {}

    def failing_reply():
        holder["orchestrator"].cancel()
        raise ProviderError("boom")

    orchestrator, _, _ = make_orchestrator([failing_reply])
    holder["orchestrator"] = orchestrator

    run = orchestrator.run("打开设置", RunConfig(inter_step_delay=0, max_consecutive_failures=1))

    assert run.status == TaskStatus.CANCELLED
    assert run.last_error is not None


def test_unexpected_error_does_not_escape():
    """测试：意外异常转换为失败状态"""
    def broken_reply():
        raise RuntimeError("unexpected")

    orchestrator, _, _ = make_orchestrator([broken_reply])

    run = orchestrator.run("打开设置", FAST)

    assert run.status == TaskStatus.FAILED
    assert run.finish_reason == FinishReason.ERROR
    assert "unexpected" in run.message


def test_verification_can_finish_run():
    """测试：开启逐步验证时，验证器判断完成即结束"""
    advisor = VerificationAdvisor(FakeProvider([DONE]))
    orchestrator, provider, _ = make_orchestrator([BACK], advisor=advisor)

    run = orchestrator.run("返回", RunConfig(inter_step_delay=0, verify_after_step=True))

    assert run.status == TaskStatus.COMPLETED
    assert run.finish_reason == FinishReason.VERIFIED
    assert provider.call_count == 1


def test_screen_context_and_screenshot_are_sent():
    """测试：每次规划携带屏幕描述和截图"""
    backend = FakeBackend(make_tree())
    slot = CapabilitySlot()
    slot.attach(backend)
    screenshots = FakeScreenshots()
    provider = FakeProvider([DONE])
    orchestrator = PlanningOrchestrator(
        provider,
        ActionExecutor(slot, pre_action_delay=0),
        screen_analyzer=ScreenAnalyzer(slot),
        screenshot_provider=screenshots,
    )

    orchestrator.run("打开设置", FAST)

    request = provider.requests[0]
    assert request["screen_context"].startswith("Screen Elements:")
    assert request["screenshot"] == "iVBORw0KGgo="

    orchestrator.run("打开设置", RunConfig(inter_step_delay=0, screenshot_enabled=False))
    assert provider.requests[1]["screenshot"] is None
    assert screenshots.count == 1


def test_callbacks_and_log_format():
    """测试：进度、状态、日志回调"""
    progress = []
    states = []
    lines = []
    orchestrator, _, _ = make_orchestrator([BACK, DONE])
    orchestrator.on_progress_callback = lambda step, total, command: progress.append((step, total, command))
    orchestrator.on_state_callback = states.append
    orchestrator.on_log_callback = lines.append

    orchestrator.run("返回", FAST)

    assert progress == [(1, 20, PressBack())]
    assert states[0].status == TaskStatus.IDLE
    assert states[-1].status == TaskStatus.COMPLETED
    assert lines == orchestrator.logs
    assert all(re.match(r"^\[\d{2}:\d{2}:\d{2}\] ", line) for line in lines)


def test_published_state_is_a_snapshot():
    """测试：发布的状态是副本，不随后续执行改变"""
    states = []
    orchestrator, _, _ = make_orchestrator([BACK, DONE])
    orchestrator.on_state_callback = states.append

    orchestrator.run("返回", FAST)

    assert states[0].history == []
    assert orchestrator.state.history == [PressBack()]


def test_new_run_replaces_previous():
    """测试：开始新任务时重置状态和日志"""
    orchestrator, _, _ = make_orchestrator([DONE])
    first = orchestrator.run("任务一", FAST)
    second = orchestrator.run("任务二", FAST)

    assert first.run_id != second.run_id
    assert orchestrator.state.goal == "任务二"
    assert not any("任务一" in line for line in orchestrator.logs)

    orchestrator.reset()
    assert orchestrator.state is None
    assert orchestrator.logs == []


class BlankReplyProvider(PlanningProvider):
    """complete() 返回空白文本的规划服务"""

    name = "blank"

    def __init__(self, text):
        super().__init__()
        self.text = text

    def complete(self, user_prompt, screenshot_base64):
        return self.text


def test_blank_reply_completes():
    """测试：规划服务回复空白文本时任务完成，不计为失败"""
    slot = CapabilitySlot()
    slot.attach(FakeBackend(make_tree()))
    executor = ActionExecutor(slot, pre_action_delay=0, sleep=lambda s: None)
    orchestrator = PlanningOrchestrator(BlankReplyProvider("   "), executor)

    run = orchestrator.run("打开设置", FAST)

    assert run.status == TaskStatus.COMPLETED
    assert run.finish_reason == FinishReason.CONFIRMED
    assert run.consecutive_failures == 0


def test_overlapping_blocking_runs():
    """测试：另一个线程的任务仍在执行时开始新任务，旧任务被取消并结束后新任务才开始"""
    in_flight = threading.Event()
    release = threading.Event()

    def slow_reply():
        in_flight.set()
        release.wait(5)
        return BACK

    orchestrator, provider, backend = make_orchestrator([slow_reply, DONE])
    results = {}
    first = threading.Thread(target=lambda: results.setdefault("A", orchestrator.run("任务一", FAST)))
    first.start()
    assert in_flight.wait(5)

    timer = threading.Timer(0.3, release.set)
    timer.start()
    second = orchestrator.run("任务二", FAST)
    first.join(5)
    timer.cancel()

    assert results["A"].goal == "任务一"
    assert results["A"].status == TaskStatus.CANCELLED
    assert second.goal == "任务二"
    assert second.status == TaskStatus.COMPLETED
    assert orchestrator.state.goal == "任务二"
    assert provider.call_count == 2
    assert backend.calls == []
    assert orchestrator.wait(1)
