"""步骤编排器

职责:
- 按顺序执行步骤的 run 阶段，遇到 HALT 或取消信号即停止推进
- 对每个已执行 run 的步骤按逆序调用 cleanup（finally 中执行，不受异常/中断影响）
- 单个 cleanup 失败只记录，不影响其余步骤的清理
- 构建成败只由 run 阶段决定
- KeyboardInterrupt（无论落在步骤内还是步骤之间）转换为取消，清理照常进行
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from xenbuild.core.state import ERROR, STATE_CANCELLED, STATE_HALTED, UI, StateBag
from xenbuild.core.steps import BuildContext, StepAction

if TYPE_CHECKING:
    from xenbuild.core.steps import Step

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """构建执行报告"""

    executed: list[str] = field(default_factory=list)
    cleaned: list[str] = field(default_factory=list)
    cleanup_errors: list[str] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)
    halted: bool = False
    cancelled: bool = False
    error: str = ""

    @property
    def success(self) -> bool:
        return not (self.halted or self.cancelled)


class StepRunner:
    """顺序步骤执行器（一次构建一个实例，不跨构建共享）"""

    def __init__(
        self, steps: Sequence[Step], ctx: BuildContext | None = None,
    ) -> None:
        self.steps = list(steps)
        self.ctx = ctx or BuildContext()

    def cancel(self) -> None:
        """请求取消：当前步骤结束后不再推进，直接进入清理"""
        self.ctx.cancel()

    def run(self, state: StateBag | None = None) -> BuildReport:
        """执行全部步骤并保证清理，返回报告"""
        state = state if state is not None else StateBag()
        if UI not in state:
            state.put(UI, self.ctx.ui)

        report = BuildReport()
        executed: list[Step] = []
        try:
            for step in self.steps:
                if self._observe_cancel(state, report):
                    break
                # 先登记再执行，run 自身失败也会被清理
                executed.append(step)
                report.executed.append(step.name)
                action = self._run_step(step, state, report)
                if action is StepAction.HALT:
                    state.put(STATE_HALTED, True)
                    report.halted = True
                    break
                if self._observe_cancel(state, report):
                    break
        except KeyboardInterrupt:
            # 步骤之间或日志调用中被中断，同样按取消处理，清理前必须写入取消标记
            logger.warning("编排过程中被中断")
            self.ctx.cancel()
            self._observe_cancel(state, report)
        finally:
            self._cleanup(executed, state, report)

        value, ok = state.get_ok(ERROR)
        if ok and value:
            report.error = str(value)
        logger.info(
            "构建结束: success=%s halted=%s cancelled=%s executed=%d cleanup_errors=%d",
            report.success, report.halted, report.cancelled,
            len(report.executed), len(report.cleanup_errors),
        )
        return report

    def _observe_cancel(self, state: StateBag, report: BuildReport) -> bool:
        if not self.ctx.cancelled:
            return False
        if not report.cancelled:
            logger.warning("收到取消信号，停止执行后续步骤")
        state.put(STATE_CANCELLED, True)
        report.cancelled = True
        return True

    def _run_step(
        self, step: Step, state: StateBag, report: BuildReport,
    ) -> StepAction | None:
        logger.info("[%s] 开始", step.name)
        start = time.perf_counter()
        try:
            action = step.run(self.ctx, state)
        except KeyboardInterrupt:
            logger.warning("[%s] 执行中被中断", step.name)
            self.ctx.cancel()
            report.steps.append({"step": step.name, "status": "interrupted"})
            return None
        except Exception as exc:
            logger.exception("[%s] 执行异常", step.name)
            self.ctx.ui.error(f"{step.name} 失败: {exc}")
            state.put(ERROR, str(exc))
            report.steps.append({"step": step.name, "status": "error", "detail": str(exc)})
            return StepAction.HALT
        duration = time.perf_counter() - start
        report.steps.append({
            "step": step.name, "status": action.value,
            "duration": round(duration, 3),
        })
        logger.info("[%s] 完成: %s (%.2fs)", step.name, action.value, duration)
        return action

    def _cleanup(
        self, executed: list[Step], state: StateBag, report: BuildReport,
    ) -> None:
        for step in reversed(executed):
            report.cleaned.append(step.name)
            try:
                step.cleanup(state)
            except (Exception, KeyboardInterrupt) as exc:
                # 清理阶段不因单步失败或二次中断而放弃
                logger.exception("[%s] 清理失败", step.name)
                report.cleanup_errors.append(f"{step.name}: {exc}")


@contextlib.contextmanager
def handle_interrupts(ctx: BuildContext) -> Iterator[None]:
    """把 SIGINT/SIGTERM 转换为构建取消信号

    仅在主线程生效；其他线程中为空操作。信号处理器在整个构建
    （包括清理阶段）内保持安装，重复信号只记录日志。
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, _frame: Any) -> None:
        if ctx.cancelled:
            logger.warning("已在取消中，忽略信号 %d", signum)
            return
        logger.warning("收到信号 %d，取消构建", signum)
        ctx.cancel()

    previous = {
        sig: signal.signal(sig, _handler)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
