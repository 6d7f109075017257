"""数据模型与异常体系测试"""

from __future__ import annotations

import pytest

from provisioner.core.exceptions import (
    ConfigError,
    ExecutionError,
    PersistenceError,
    ProvisionerError,
    StepFailure,
    StepNotFoundError,
    UserCancellation,
)
from provisioner.core.models import (
    CheckResult,
    EventKind,
    ExecutionEvent,
    PersistentState,
    RunMode,
    Severity,
    StepRun,
    StepStatus,
    ValidationReport,
)

# =========================================================================
# models.py
# =========================================================================


class TestStepRun:
    def test_legal_path(self) -> None:
        run = StepRun(step_id="01")
        run.advance(StepStatus.RUNNING)
        run.advance(StepStatus.DONE)
        assert run.status is StepStatus.DONE
        assert run.history == [StepStatus.NOT_STARTED, StepStatus.RUNNING]

    @pytest.mark.parametrize("target", [
        StepStatus.DONE, StepStatus.FAILED, StepStatus.CANCELED,
    ])
    def test_cannot_skip_running(self, target: StepStatus) -> None:
        with pytest.raises(ValueError, match="非法状态迁移"):
            StepRun(step_id="01").advance(target)

    def test_terminal_is_final(self) -> None:
        run = StepRun(step_id="01")
        run.advance(StepStatus.RUNNING)
        run.advance(StepStatus.FAILED)
        with pytest.raises(ValueError):
            run.advance(StepStatus.RUNNING)


class TestPersistentState:
    def test_roundtrip_keeps_unknown_fields(self) -> None:
        data = {
            "last_completed_step": "03_nic_ifupdown",
            "last_run_time": "2026-01-01 12:00:00",
            "schema_note": "v2",
        }
        state = PersistentState.from_dict(data)
        assert state.last_completed_step == "03_nic_ifupdown"
        assert state.extra == {"schema_note": "v2"}
        assert state.to_dict() == data

    def test_empty_values_mean_nothing_completed(self) -> None:
        state = PersistentState.from_dict({"last_completed_step": ""})
        assert state.last_completed_step is None
        assert state.last_run_time is None


class TestValidationReport:
    def test_counts_and_blocking(self) -> None:
        report = ValidationReport([
            CheckResult("disk", Severity.OK),
            CheckResult("network", Severity.WARN, "mtu"),
            CheckResult("license", Severity.FAIL, "expired"),
        ])
        assert report.summary() == {"ok": 1, "warn": 1, "fail": 1, "blocking": True}

    def test_warn_never_blocks(self) -> None:
        report = ValidationReport([
            CheckResult("a", Severity.OK), CheckResult("b", Severity.WARN),
        ])
        assert report.blocking is False
        assert [r.check_id for r in report.by_severity(Severity.WARN)] == ["b"]

    def test_empty_report(self) -> None:
        assert ValidationReport().summary() == {
            "ok": 0, "warn": 0, "fail": 0, "blocking": False,
        }


class TestExecutionEvent:
    def test_run_fail_label_carries_rc(self) -> None:
        event = ExecutionEvent(kind=EventKind.RUN_FAIL, step_id="07", rc=2)
        assert event.label == "RUN-FAIL(2)"
        assert ExecutionEvent(kind=EventKind.RUN_OK, step_id="07").label == "RUN-OK"

    def test_dict_roundtrip(self) -> None:
        event = ExecutionEvent(
            kind=EventKind.RUN, step_id="07", timestamp="2026-01-01 00:00:00",
            detail="lvcreate", dry_run=True,
        )
        data = event.to_dict()
        assert data["kind"] == "RUN" and data["dry_run"] is True
        assert "rc" not in data
        assert ExecutionEvent.from_dict(data) == event

    def test_run_mode(self) -> None:
        assert RunMode.DRY_RUN.is_dry_run
        assert not RunMode.REAL.is_dry_run


# =========================================================================
# exceptions.py
# =========================================================================


class TestExceptions:
    @pytest.mark.parametrize(("exc", "code"), [
        (ConfigError("x"), "CONFIG_ERROR"),
        (StepFailure("x"), "STEP_FAILURE"),
        (UserCancellation("x"), "USER_CANCELED"),
        (PersistenceError("x"), "PERSISTENCE_ERROR"),
    ])
    def test_codes(self, exc: ProvisionerError, code: str) -> None:
        assert isinstance(exc, ProvisionerError)
        assert exc.code == code

    def test_step_not_found(self) -> None:
        e = StepNotFoundError("99_x")
        assert isinstance(e, ConfigError)
        assert e.step_id == "99_x"
        assert "99_x" in str(e)

    def test_execution_error_is_step_failure(self) -> None:
        e = ExecutionError("apt failed", returncode=100)
        assert isinstance(e, StepFailure)
        assert e.returncode == 100
