"""步骤编排器

职责：
- 计算续跑点（纯函数，只读进度状态）
- 单步执行：确认门 → 主体 → 仅在 DONE 时提交进度 → 结果事件
- 自动续跑：从续跑点开始逐步执行，遇到第一个非 DONE 结果即停止，不回滚
- 完成指定步骤后的自动重启（dry-run 下只记录不执行）

单次调用的状态机：
  NOT_STARTED → RUNNING → DONE | FAILED | CANCELED
终态只对本次调用有效，同一步骤可随时再次执行。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

from provisioner.core.config_store import ConfigStore
from provisioner.core.events import EventLog
from provisioner.core.exceptions import (
    PersistenceError,
    StepFailure,
    UserCancellation,
)
from provisioner.core.gate import AutoConfirmGate, ConfirmationGate
from provisioner.core.models import (
    BodyResult,
    Decision,
    EventKind,
    RunMode,
    Step,
    StepContext,
    StepOutcome,
    StepResult,
    StepRun,
    StepStatus,
    now_timestamp,
)
from provisioner.core.state import StateStore
from provisioner.core.steps import StepRegistry
from provisioner.utils.shell import CommandExecutor, CommandRunner

logger = logging.getLogger(__name__)

_OUTCOME_EVENTS = {
    StepOutcome.DONE: EventKind.DONE,
    StepOutcome.FAILED: EventKind.FAILED,
    StepOutcome.CANCELED: EventKind.CANCELED,
}


def _normalize(raw: Any) -> BodyResult:
    """主体返回值统一为 BodyResult（None / True 视为成功）"""
    if isinstance(raw, BodyResult):
        return raw
    if raw is None or raw is True:
        return BodyResult.ok()
    if raw is False:
        return BodyResult.fail("步骤返回失败")
    raise StepFailure(f"步骤返回了无法识别的结果: {raw!r}")


class Orchestrator:
    """步骤编排器（存储通过构造注入，不依赖全局状态）

    Args:
        registry: 有序步骤注册表
        state_store: 进度状态存储（编排器是唯一写者）
        config_store: 部署参数存储（只读）
        events: 事件日志
        gate: 确认门，缺省自动确认
        executor: 传给 CommandRunner 的底层执行器
        echo: 命令输出回调
        reboot: 重启回调；为 None 时只记录重启请求
    """

    def __init__(
        self,
        registry: StepRegistry,
        state_store: StateStore,
        config_store: ConfigStore,
        events: EventLog,
        gate: ConfirmationGate | None = None,
        *,
        executor: CommandExecutor | None = None,
        echo: Callable[[str], None] | None = None,
        reboot: Callable[[Step], None] | None = None,
        clock: Callable[[], str] = now_timestamp,
    ) -> None:
        self.registry = registry
        self.state_store = state_store
        self.config_store = config_store
        self.events = events
        self.gate = gate or AutoConfirmGate()
        self.executor = executor
        self.echo = echo
        self.reboot = reboot
        self.clock = clock

    # ------------------------------------------------------------------
    # 续跑点
    # ------------------------------------------------------------------

    def resume_point(self) -> str | None:
        """第一个未完成的步骤 ID；全部完成返回 None

        记录的步骤不在注册表中（例如状态文件来自其他目录）时从头开始。
        """
        state = self.state_store.load()
        next_index = self.registry.index_of(state.last_completed_step) + 1
        if next_index >= len(self.registry):
            return None
        return self.registry.at(next_index).id

    def status(self) -> dict[str, Any]:
        """当前进度概要"""
        state = self.state_store.load()
        completed = self.registry.index_of(state.last_completed_step) + 1
        return {
            "last_completed_step": state.last_completed_step,
            "last_run_time": state.last_run_time,
            "resume_point": self.resume_point(),
            "completed": completed,
            "total": len(self.registry),
            "dry_run": self.config_store.dry_run,
        }

    # ------------------------------------------------------------------
    # 单步执行
    # ------------------------------------------------------------------

    def run_step(self, step_id: str, mode: RunMode | None = None) -> StepResult:
        """执行单个步骤

        Raises:
            StepNotFoundError: 步骤未注册
            PersistenceError: 进度提交失败（本次操作终止，已有状态不变）
        """
        step = self.registry.get(step_id)
        mode = mode or self.config_store.mode
        run = StepRun(step_id=step.id)
        run.advance(StepStatus.RUNNING)
        started = self.clock()
        dry_run = mode.is_dry_run

        decision = self._ask(step, mode)
        if decision is not Decision.CONFIRMED:
            logger.info("用户取消执行步骤 %s", step.id)
            return self._finish(
                run, step, mode, StepOutcome.CANCELED,
                f"用户取消 ({decision.value})", started,
            )

        self.events.emit(EventKind.START, step.id, step.name, dry_run=dry_run)
        outcome, cause = self._invoke(step, mode)

        if outcome is StepOutcome.DONE:
            self._commit(step)
        result = self._finish(run, step, mode, outcome, cause, started)

        if outcome is StepOutcome.DONE:
            self._maybe_reboot(step, mode)
        return result

    def _ask(self, step: Step, mode: RunMode) -> Decision:
        try:
            return self.gate.confirm(step, mode)
        except UserCancellation:
            return Decision.CANCELED

    def _invoke(self, step: Step, mode: RunMode) -> tuple[StepOutcome, str]:
        runner = CommandRunner(
            step.id, mode, self.events, executor=self.executor, echo=self.echo,
            redact=self.config_store.secret_values(),
        )
        ctx = StepContext(step_id=step.id, mode=mode, runner=runner)
        try:
            result = _normalize(step.body(self.config_store.snapshot(), ctx))
        except UserCancellation as e:
            return StepOutcome.CANCELED, runner.scrub(str(e)) or "用户取消"
        except PersistenceError:
            raise
        except StepFailure as e:
            return StepOutcome.FAILED, runner.scrub(str(e))
        except Exception as e:  # noqa: BLE001 - 主体异常不得终止整个进程
            logger.debug("步骤 %s 主体异常", step.id, exc_info=True)
            return StepOutcome.FAILED, runner.scrub(f"{type(e).__name__}: {e}")

        if result.success:
            return StepOutcome.DONE, ""
        return StepOutcome.FAILED, runner.scrub(result.cause) or "步骤返回失败"

    def _commit(self, step: Step) -> None:
        """提交进度；重跑较早的步骤时不回退 last_completed_step"""
        current = self.state_store.load().last_completed_step
        target = step.id
        if self.registry.index_of(current) > self.registry.index_of(step.id):
            assert current is not None
            target = current
        self.state_store.commit(target, self.clock())

    def _finish(
        self,
        run: StepRun,
        step: Step,
        mode: RunMode,
        outcome: StepOutcome,
        cause: str,
        started: str,
    ) -> StepResult:
        run.advance(StepStatus(outcome.value))
        detail = step.name if not cause else f"{step.name}: {cause}"
        self.events.emit(
            _OUTCOME_EVENTS[outcome], step.id, detail, dry_run=mode.is_dry_run,
        )
        return StepResult(
            step_id=step.id, name=step.name, outcome=outcome, mode=mode,
            cause=cause, started_at=started, finished_at=self.clock(),
        )

    def _maybe_reboot(self, step: Step, mode: RunMode) -> None:
        if step.id not in self.config_store.reboot_after:
            return
        if mode.is_dry_run:
            self.events.emit(
                EventKind.REBOOT, step.id, "dry-run: 跳过自动重启", dry_run=True,
            )
            return
        self.events.emit(EventKind.REBOOT, step.id, "步骤完成，执行自动重启")
        if self.reboot is None:
            logger.warning("步骤 %s 要求自动重启，但未配置重启回调", step.id)
            return
        self.reboot(step)

    # ------------------------------------------------------------------
    # 自动续跑
    # ------------------------------------------------------------------

    def auto_continue(self, mode: RunMode | None = None) -> Iterator[StepResult]:
        """从续跑点开始顺序执行，惰性产出每一步的结果

        遇到第一个非 DONE 结果或全部完成时结束。
        """
        mode = mode or self.config_store.mode
        while True:
            step_id = self.resume_point()
            if step_id is None:
                logger.info("所有步骤均已完成")
                return
            result = self.run_step(step_id, mode)
            yield result
            if not result.done:
                logger.info(
                    "自动续跑在 %s 停止: %s", step_id, result.outcome.value,
                )
                return
