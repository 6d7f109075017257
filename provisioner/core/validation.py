"""系统配置校验

每个校验项是只读、确定、无交互的函数，返回一个严重级别：
  - OK:   符合预期
  - WARN: 建议复查，不阻断
  - FAIL: 阻断后续部署
校验项自身无法判定（抛异常）时记为 FAIL，不得低估风险。
校验与 DRY_RUN、进度状态、部署参数都无关，只读取系统现状。

声明式校验定义在 checks.yml:
  checks:
    - id: kvm_device
      type: path_exists          # command | path_exists | file_contains
      path: /dev/kvm
      severity: WARN             # 不满足时的级别，默认 FAIL
      message: "/dev/kvm 不存在，请检查 BIOS VT-x/VT-d"
    - id: swap_disabled
      type: file_contains
      path: /proc/swaps
      pattern: "^/"
      rule: forbidden            # required | forbidden
      severity: WARN
    - id: networking_active
      type: command
      cmd: "systemctl is-active --quiet networking"
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import yaml

from provisioner.core.exceptions import ConfigError, ValidationCheckError
from provisioner.core.models import CheckResult, Severity, ValidationReport
from provisioner.utils.shell import CommandExecutor, LocalExecutor
from provisioner.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

# 校验函数可返回 Severity、(Severity, message) 或 CheckResult
CheckOutput = Union[Severity, tuple[Severity, str], CheckResult]
CheckFunc = Callable[[], CheckOutput]


class ValidationEngine:
    """校验引擎：按注册顺序执行并汇总"""

    def __init__(self) -> None:
        self._checks: dict[str, CheckFunc] = {}

    def register(self, check_id: str, func: CheckFunc) -> None:
        if check_id in self._checks:
            raise ConfigError(f"校验项 ID 重复: {check_id}")
        self._checks[check_id] = func

    def check(self, check_id: str) -> Callable[[CheckFunc], CheckFunc]:
        """装饰器形式的注册"""
        def decorator(func: CheckFunc) -> CheckFunc:
            self.register(check_id, func)
            return func
        return decorator

    @property
    def check_ids(self) -> list[str]:
        return list(self._checks)

    def run_all(self) -> ValidationReport:
        report = ValidationReport()
        for check_id, func in self._checks.items():
            report.results.append(self._run_one(check_id, func))
        logger.info(
            "校验完成: ok=%d warn=%d fail=%d blocking=%s",
            report.ok_count, report.warn_count, report.fail_count, report.blocking,
        )
        return report

    @staticmethod
    def _run_one(check_id: str, func: CheckFunc) -> CheckResult:
        try:
            output = func()
        except Exception as e:  # noqa: BLE001 - 无法判定即 FAIL
            logger.warning("校验项 %s 无法判定: %s", check_id, e)
            return CheckResult(check_id, Severity.FAIL, f"无法判定: {e}")

        if isinstance(output, CheckResult):
            return CheckResult(check_id, output.severity, output.message)
        if isinstance(output, Severity):
            return CheckResult(check_id, output)
        if (
            isinstance(output, tuple) and len(output) == 2
            and isinstance(output[0], Severity)
        ):
            return CheckResult(check_id, output[0], str(output[1]))
        return CheckResult(
            check_id, Severity.FAIL, f"校验项返回了无法识别的结果: {output!r}",
        )


def render_summary(report: ValidationReport) -> str:
    """人类可读的汇总：结论 → FAIL → WARN → 一行 OK"""
    lines: list[str] = []
    if report.blocking:
        lines.append("[结论] 存在阻断项，请先处理下列 [FAIL] 与 [WARN] 项。")
    elif report.warn_count:
        lines.append("[结论] 无阻断项，请复查下列 [WARN] 项。")
    else:
        lines.append("[结论] 所有校验项均通过。")
    lines.append(
        f"  OK={report.ok_count}  WARN={report.warn_count}  FAIL={report.fail_count}"
    )

    for severity in (Severity.FAIL, Severity.WARN):
        items = report.by_severity(severity)
        if not items:
            continue
        lines.append("")
        lines.append(f"[{severity.value}]")
        for r in items:
            lines.append(f"  - {r.check_id}: {r.message}" if r.message else f"  - {r.check_id}")

    if report.ok_count:
        lines.append("")
        lines.append("[OK]")
        lines.append(f"  - 其余 {report.ok_count} 项校验均在正常范围内。")
    return "\n".join(lines)


# =========================================================================
# 声明式校验项
# =========================================================================


@dataclass
class _DeclaredCheck:
    severity: Severity = Severity.FAIL
    message: str = ""
    ok_message: str = ""

    def _verdict(self, passed: bool, detail: str) -> tuple[Severity, str]:
        if passed:
            return Severity.OK, self.ok_message or detail
        return self.severity, self.message or detail


@dataclass
class CommandCheck(_DeclaredCheck):
    """命令退出码为 0 即通过（无论 DRY_RUN 都真实执行，命令必须只读）"""

    cmd: str = ""
    timeout: int = 30
    executor: CommandExecutor = field(default_factory=LocalExecutor)

    def __call__(self) -> tuple[Severity, str]:
        try:
            r = self.executor.execute(self.cmd, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ValidationCheckError(f"命令无法执行: {self.cmd}: {e}") from e
        return self._verdict(r.success, f"{self.cmd} (rc={r.returncode})")


@dataclass
class PathCheck(_DeclaredCheck):
    """路径存在即通过"""

    path: str = ""

    def __call__(self) -> tuple[Severity, str]:
        exists = Path(self.path).exists()
        return self._verdict(exists, f"{self.path} {'存在' if exists else '不存在'}")


@dataclass
class PatternCheck(_DeclaredCheck):
    """文件内容匹配检查

    rule=required: 必须包含模式；rule=forbidden: 不得包含模式。
    文件不可读时无法判定。
    """

    path: str = ""
    pattern: str = ""
    rule: str = "required"

    def __call__(self) -> tuple[Severity, str]:
        p = Path(self.path)
        try:
            text = p.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ValidationCheckError(f"无法读取 {p}: {e}") from e
        found = re.findall(self.pattern, text, re.MULTILINE)
        if self.rule == "required":
            return self._verdict(bool(found), f"{p}: 需要模式 {self.pattern!r}")
        return self._verdict(
            not found, f"{p}: 发现禁止模式 {self.pattern!r} ({len(found)} 处)",
        )


def _severity(raw: Any, check_id: str) -> Severity:
    try:
        severity = Severity(str(raw).upper())
    except ValueError as e:
        raise ConfigError(f"校验项 {check_id}: 未知严重级别 {raw!r}") from e
    if severity is Severity.OK:
        raise ConfigError(f"校验项 {check_id}: 失败级别不能是 OK")
    return severity


def build_check(entry: dict[str, Any], executor: CommandExecutor | None = None) -> tuple[str, CheckFunc]:
    """由 checks.yml 的一项构造 (check_id, 校验函数)"""
    check_id = str(entry.get("id", "")).strip()
    if not check_id:
        raise ConfigError("校验项缺少 id")
    common = {
        "severity": _severity(entry.get("severity", "FAIL"), check_id),
        "message": str(entry.get("message", "")),
        "ok_message": str(entry.get("ok_message", "")),
    }
    kind = entry.get("type", "command")
    if kind == "command":
        if not entry.get("cmd"):
            raise ConfigError(f"校验项 {check_id}: command 类型需要 cmd")
        return check_id, CommandCheck(
            cmd=str(entry["cmd"]), timeout=int(entry.get("timeout", 30)),
            executor=executor or LocalExecutor(), **common,
        )
    if kind == "path_exists":
        return check_id, PathCheck(path=str(entry.get("path", "")), **common)
    if kind == "file_contains":
        rule = entry.get("rule", "required")
        if rule not in ("required", "forbidden"):
            raise ConfigError(f"校验项 {check_id}: 未知规则类型 {rule}")
        try:
            re.compile(str(entry.get("pattern", "")))
        except re.error as e:
            raise ConfigError(f"校验项 {check_id}: 正则表达式错误 - {e}") from e
        return check_id, PatternCheck(
            path=str(entry.get("path", "")), pattern=str(entry.get("pattern", "")),
            rule=rule, **common,
        )
    raise ConfigError(f"校验项 {check_id}: 未知类型 {kind}")


def load_checks(
    path: str | Path,
    engine: ValidationEngine | None = None,
    executor: CommandExecutor | None = None,
) -> ValidationEngine:
    """从 checks.yml 构造校验引擎"""
    p = Path(path)
    try:
        data = load_yaml(p)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"读取校验定义失败: {p}: {e}") from e

    engine = engine or ValidationEngine()
    for entry in data.get("checks") or []:
        if not isinstance(entry, dict):
            raise ConfigError(f"{p}: 校验项定义必须是映射")
        check_id, func = build_check(entry, executor=executor)
        engine.register(check_id, func)
    logger.debug("已加载 %d 个校验项: %s", len(engine.check_ids), p)
    return engine
