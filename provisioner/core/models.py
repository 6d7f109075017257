"""核心数据模型

步骤、执行结果、持久化状态、校验结果、执行事件集中定义于此，
编排器、存储层、校验引擎与 CLI 统一从这里导入。
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from provisioner.utils.shell import CommandRunner

# =========================================================================
# 枚举
# =========================================================================


class RunMode(str, Enum):
    """执行模式"""

    REAL = "real"
    DRY_RUN = "dry_run"

    @property
    def is_dry_run(self) -> bool:
        return self is RunMode.DRY_RUN


class StepOutcome(str, Enum):
    """单次调用的终态"""

    DONE = "DONE"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class StepStatus(str, Enum):
    """单次调用的状态机状态"""

    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


# 终态之后不允许再迁移；重新执行会创建新的 StepRun
_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.NOT_STARTED: frozenset({StepStatus.RUNNING}),
    StepStatus.RUNNING: frozenset({
        StepStatus.DONE, StepStatus.FAILED, StepStatus.CANCELED,
    }),
    StepStatus.DONE: frozenset(),
    StepStatus.FAILED: frozenset(),
    StepStatus.CANCELED: frozenset(),
}


class Decision(str, Enum):
    """确认门返回值（DECLINED 与 CANCELED 对编排器等价）"""

    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    CANCELED = "CANCELED"


class Severity(str, Enum):
    """校验严重级别：WARN 永不阻断，FAIL 总是阻断"""

    OK = "OK"
    WARN = "WARN"
    FAIL = "FAIL"


class EventKind(str, Enum):
    """执行事件类型"""

    START = "START"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELED = "CANCELED"
    RUN = "RUN"
    RUN_OK = "RUN-OK"
    RUN_FAIL = "RUN-FAIL"
    REBOOT = "REBOOT"


def now_timestamp() -> str:
    """本地时间戳，与安装日志中的格式一致"""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


# =========================================================================
# 步骤
# =========================================================================


@dataclass
class BodyResult:
    """步骤主体的返回值"""

    success: bool
    cause: str = ""

    @classmethod
    def ok(cls) -> BodyResult:
        return cls(success=True)

    @classmethod
    def fail(cls, cause: str) -> BodyResult:
        return cls(success=False, cause=cause)


@dataclass
class StepContext:
    """传给步骤主体的执行上下文"""

    step_id: str
    mode: RunMode
    runner: CommandRunner

    @property
    def dry_run(self) -> bool:
        return self.mode.is_dry_run


# 主体可返回 BodyResult、bool 或 None（None 视为成功）
StepBody = Callable[[Mapping[str, Any], StepContext], Union[BodyResult, bool, None]]


@dataclass(frozen=True)
class Step:
    """步骤定义：ID 一经发布永不改变含义与位置"""

    id: str
    name: str
    body: StepBody = field(compare=False, repr=False)


@dataclass
class StepRun:
    """一次步骤调用的状态记录"""

    step_id: str
    status: StepStatus = StepStatus.NOT_STARTED
    history: list[StepStatus] = field(default_factory=list)

    def advance(self, target: StepStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"非法状态迁移: {self.step_id} {self.status.value} -> {target.value}"
            )
        self.history.append(self.status)
        self.status = target


@dataclass
class StepResult:
    """run_step / auto_continue 的返回记录"""

    step_id: str
    name: str
    outcome: StepOutcome
    mode: RunMode
    cause: str = ""
    started_at: str = ""
    finished_at: str = ""

    @property
    def done(self) -> bool:
        return self.outcome is StepOutcome.DONE


# =========================================================================
# 持久化状态
# =========================================================================


@dataclass
class PersistentState:
    """最近完成的步骤与时间；未知字段原样保留"""

    last_completed_step: str | None = None
    last_run_time: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PersistentState:
        known = {"last_completed_step", "last_run_time"}
        last = data.get("last_completed_step") or None
        run_time = data.get("last_run_time") or None
        return cls(
            last_completed_step=str(last) if last is not None else None,
            last_run_time=str(run_time) if run_time is not None else None,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_completed_step": self.last_completed_step,
            "last_run_time": self.last_run_time,
            **self.extra,
        }


# =========================================================================
# 校验
# =========================================================================


@dataclass
class CheckResult:
    """单个校验项结果"""

    check_id: str
    severity: Severity
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass
class ValidationReport:
    """校验报告，计数由结果列表派生"""

    results: list[CheckResult] = field(default_factory=list)

    def _count(self, severity: Severity) -> int:
        return sum(1 for r in self.results if r.severity is severity)

    @property
    def ok_count(self) -> int:
        return self._count(Severity.OK)

    @property
    def warn_count(self) -> int:
        return self._count(Severity.WARN)

    @property
    def fail_count(self) -> int:
        return self._count(Severity.FAIL)

    @property
    def blocking(self) -> bool:
        return self.fail_count > 0

    def by_severity(self, severity: Severity) -> list[CheckResult]:
        return [r for r in self.results if r.severity is severity]

    def summary(self) -> dict[str, Any]:
        return {
            "ok": self.ok_count,
            "warn": self.warn_count,
            "fail": self.fail_count,
            "blocking": self.blocking,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary(),
        }


# =========================================================================
# 执行事件
# =========================================================================


@dataclass
class ExecutionEvent:
    """追加式事件记录"""

    kind: EventKind
    step_id: str
    timestamp: str = field(default_factory=now_timestamp)
    detail: str = ""
    rc: int | None = None
    dry_run: bool = False

    @property
    def label(self) -> str:
        if self.kind is EventKind.RUN_FAIL and self.rc is not None:
            return f"{self.kind.value}({self.rc})"
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "step_id": self.step_id,
            "kind": self.kind.value,
            "detail": self.detail,
        }
        if self.rc is not None:
            data["rc"] = self.rc
        if self.dry_run:
            data["dry_run"] = True
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExecutionEvent:
        return cls(
            kind=EventKind(data["kind"]),
            step_id=str(data.get("step_id", "")),
            timestamp=str(data.get("timestamp", "")),
            detail=str(data.get("detail", "")),
            rc=data.get("rc"),
            dry_run=bool(data.get("dry_run", False)),
        )
