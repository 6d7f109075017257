"""交互提示与渲染

questionary 负责提问，rich 负责输出。questionary 的 .ask() 在 Esc / Ctrl-C 时返回 None，
统一视为取消。
"""

from __future__ import annotations

import questionary
from questionary import Style
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from provisioner.core.models import (
    Decision,
    RunMode,
    Severity,
    Step,
    StepOutcome,
    StepResult,
    ValidationReport,
)

console = Console()

PROMPT_STYLE = Style([
    ("qmark", "fg:cyan bold"),
    ("question", "bold"),
    ("answer", "fg:green"),
    ("pointer", "fg:cyan bold"),
    ("highlighted", "fg:cyan"),
    ("selected", "fg:green"),
])

_OUTCOME_STYLE = {
    StepOutcome.DONE: "[green]✓ DONE[/green]",
    StepOutcome.FAILED: "[red]✗ FAILED[/red]",
    StepOutcome.CANCELED: "[yellow]– CANCELED[/yellow]",
}

_SEVERITY_STYLE = {
    Severity.OK: "[green]OK[/green]",
    Severity.WARN: "[yellow]WARN[/yellow]",
    Severity.FAIL: "[red]FAIL[/red]",
}


def confirm(message: str, default: bool = False) -> Decision:
    """是/否确认；Esc 返回 CANCELED"""
    answer = questionary.confirm(message, default=default, style=PROMPT_STYLE).ask()
    if answer is None:
        return Decision.CANCELED
    return Decision.CONFIRMED if answer else Decision.DECLINED


class QuestionaryGate:
    """交互确认门：展示步骤摘要并询问是否执行"""

    def confirm(self, step: Step, mode: RunMode) -> Decision:
        tag = "[yellow]DRY-RUN (只打印命令)[/yellow]" if mode.is_dry_run else "[red]REAL (真实执行)[/red]"
        console.print(Panel(
            f"[bold]{step.name}[/bold]\n\nID: {step.id}\n模式: {tag}",
            title=f"步骤 {step.id}", border_style="blue",
        ))
        return confirm("是否执行该步骤?", default=True)


def print_result(result: StepResult, log_path: str = "") -> None:
    """打印单步结果；非 DONE 时附带原因与日志位置"""
    console.print(f"  {_OUTCOME_STYLE[result.outcome]}  {result.step_id}  [dim]{result.name}[/dim]")
    if result.outcome is StepOutcome.DONE:
        return
    if result.cause:
        console.print(f"    [dim]原因: {result.cause}[/dim]")
    if log_path:
        console.print(f"    [dim]详见日志: {log_path}，处理后可重新执行该步骤。[/dim]")


def print_report(report: ValidationReport) -> None:
    table = Table(title="整体配置校验")
    table.add_column("校验项")
    table.add_column("级别")
    table.add_column("说明")
    for r in report.results:
        table.add_row(r.check_id, _SEVERITY_STYLE[r.severity], r.message)
    console.print(table)
    verdict = "[red]阻断[/red]" if report.blocking else "[green]可继续[/green]"
    console.print(
        f"OK={report.ok_count}  WARN={report.warn_count}  "
        f"FAIL={report.fail_count}  结论: {verdict}"
    )


def print_log(lines: list[str]) -> None:
    if not lines:
        console.print("[dim]日志尚不存在。[/dim]")
        return
    for line in lines:
        console.print(line, markup=False, highlight=False)
