"""校验引擎测试"""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from provisioner.core.exceptions import ConfigError
from provisioner.core.models import CheckResult, Severity
from provisioner.core.validation import (
    CommandCheck,
    PathCheck,
    PatternCheck,
    ValidationEngine,
    build_check,
    load_checks,
    render_summary,
)
from provisioner.utils.shell import CommandResult


def _engine(**checks) -> ValidationEngine:
    engine = ValidationEngine()
    for check_id, func in checks.items():
        engine.register(check_id, func)
    return engine


class TestValidationEngine:
    def test_mixed_results(self) -> None:
        report = _engine(
            disk=lambda: Severity.OK,
            network=lambda: (Severity.WARN, "cltr0 MTU 1500"),
            license=lambda: CheckResult("ignored", Severity.FAIL, "expired"),
        ).run_all()

        assert report.summary() == {"ok": 1, "warn": 1, "fail": 1, "blocking": True}
        assert [r.check_id for r in report.results] == ["disk", "network", "license"]
        assert report.results[2].message == "expired"

    def test_warn_only_not_blocking(self) -> None:
        report = _engine(a=lambda: Severity.OK, b=lambda: Severity.WARN).run_all()
        assert report.blocking is False

    def test_exception_is_fail(self) -> None:
        def broken():
            raise RuntimeError("ethtool missing")

        report = _engine(nic=broken).run_all()
        assert report.results[0].severity is Severity.FAIL
        assert "ethtool missing" in report.results[0].message

    def test_unrecognized_output_is_fail(self) -> None:
        report = _engine(x=lambda: "ok").run_all()
        assert report.results[0].severity is Severity.FAIL

    def test_duplicate_id(self) -> None:
        engine = _engine(a=lambda: Severity.OK)
        with pytest.raises(ConfigError):
            engine.register("a", lambda: Severity.OK)

    def test_decorator_keeps_order(self) -> None:
        engine = ValidationEngine()

        @engine.check("second")
        def _b():
            return Severity.OK

        @engine.check("first")
        def _a():
            return Severity.OK

        assert engine.check_ids == ["second", "first"]

    def test_repeatable(self) -> None:
        engine = _engine(a=lambda: Severity.OK, b=lambda: Severity.WARN)
        assert engine.run_all().to_dict() == engine.run_all().to_dict()


class TestRenderSummary:
    def test_order_fail_warn_ok(self) -> None:
        report = _engine(
            a=lambda: Severity.OK,
            b=lambda: (Severity.WARN, "swap on"),
            c=lambda: (Severity.FAIL, "no iommu"),
            d=lambda: Severity.OK,
        ).run_all()
        text = render_summary(report)

        assert text.startswith("[结论] 存在阻断项")
        assert text.index("[FAIL]") < text.index("[WARN]") < text.index("[OK]")
        assert "c: no iommu" in text
        assert "其余 2 项" in text
        assert "  - a" not in text

    def test_all_ok(self) -> None:
        text = render_summary(_engine(a=lambda: Severity.OK).run_all())
        assert "所有校验项均通过" in text
        assert "[FAIL]" not in text and "[WARN]" not in text


class TestDeclaredChecks:
    def test_command_check(self) -> None:
        executor = MagicMock()
        executor.execute.return_value = CommandResult(returncode=3)
        check = CommandCheck(
            cmd="systemctl is-active --quiet networking", severity=Severity.WARN,
            executor=executor,
        )
        severity, message = check()
        assert severity is Severity.WARN
        assert "rc=3" in message

    def test_command_check_cannot_run(self) -> None:
        executor = MagicMock()
        executor.execute.side_effect = subprocess.TimeoutExpired("x", 1)
        report = _engine(x=CommandCheck(cmd="x", executor=executor)).run_all()
        assert report.results[0].severity is Severity.FAIL
        assert "无法判定" in report.results[0].message

    def test_path_check(self, tmp_path: Path) -> None:
        assert PathCheck(path=str(tmp_path))()[0] is Severity.OK
        missing = PathCheck(path=str(tmp_path / "kvm"), severity=Severity.WARN, message="no kvm")
        assert missing() == (Severity.WARN, "no kvm")

    def test_pattern_required_and_forbidden(self, tmp_path: Path) -> None:
        grub = tmp_path / "grub"
        grub.write_text('GRUB_CMDLINE_LINUX="intel_iommu=on"\n', encoding="utf-8")
        assert PatternCheck(path=str(grub), pattern="intel_iommu=on")()[0] is Severity.OK
        assert PatternCheck(
            path=str(grub), pattern="intel_iommu=on", rule="forbidden",
        )()[0] is Severity.FAIL

    def test_pattern_unreadable_is_fail(self, tmp_path: Path) -> None:
        report = _engine(x=PatternCheck(path=str(tmp_path / "none"), pattern="a")).run_all()
        assert report.results[0].severity is Severity.FAIL


class TestLoadChecks:
    def test_load(self, tmp_path: Path) -> None:
        p = tmp_path / "checks.yml"
        p.write_text(
            "checks:\n"
            "  - id: kvm_device\n"
            "    type: path_exists\n"
            f"    path: {tmp_path}\n"
            "  - id: swap_disabled\n"
            "    type: file_contains\n"
            f"    path: {tmp_path / 'swaps'}\n"
            "    pattern: '^/'\n"
            "    rule: forbidden\n"
            "    severity: warn\n"
            "  - id: networking\n"
            "    cmd: 'true'\n",
            encoding="utf-8",
        )
        (tmp_path / "swaps").write_text("Filename Type\n/swap.img file\n", encoding="utf-8")
        executor = MagicMock()
        executor.execute.return_value = CommandResult(returncode=0)

        report = load_checks(p, executor=executor).run_all()

        assert [(r.check_id, r.severity) for r in report.results] == [
            ("kvm_device", Severity.OK),
            ("swap_disabled", Severity.WARN),
            ("networking", Severity.OK),
        ]

    @pytest.mark.parametrize("entry", [
        {"type": "path_exists", "path": "/x"},
        {"id": "a", "type": "command"},
        {"id": "a", "type": "nope"},
        {"id": "a", "type": "file_contains", "path": "/x", "pattern": "("},
        {"id": "a", "type": "file_contains", "path": "/x", "pattern": "a", "rule": "maybe"},
        {"id": "a", "type": "path_exists", "path": "/x", "severity": "OK"},
        {"id": "a", "type": "path_exists", "path": "/x", "severity": "BAD"},
    ])
    def test_invalid_entries(self, entry: dict) -> None:
        with pytest.raises(ConfigError):
            build_check(entry)

    def test_shipped_checks_load(self) -> None:
        engine = load_checks(
            Path(__file__).resolve().parents[3] / "configs" / "checks.yml",
            executor=MagicMock(),
        )
        assert "kvm_device" in engine.check_ids
