"""CLI — 步骤执行与进度命令"""

from __future__ import annotations

import click

from provisioner.cli import _orchestrator, _resolve_mode, _svc
from provisioner.core.models import StepOutcome, StepResult


def register(group: click.Group) -> None:
    group.add_command(run)
    group.add_command(step)
    group.add_command(status)
    group.add_command(reset)


_mode_option = click.option(
    "--dry-run/--real", "dry_run", default=None,
    help="覆盖部署参数中的 DRY_RUN（缺省按配置）",
)
_yes_option = click.option(
    "--yes", "-y", is_flag=True, help="跳过每个步骤的确认",
)


def _echo_result(result: StepResult) -> None:
    line = f"  [{result.outcome.value:8s}] {result.step_id}  {result.name}"
    if result.cause:
        line += f"  ({result.cause})"
    click.echo(line)


def _log_hint() -> str:
    return str(_svc().events.path or "")


@click.command()
@_mode_option
@_yes_option
def run(dry_run: bool | None, yes: bool) -> None:
    """从当前进度自动执行后续步骤，遇到失败或取消即停止"""
    orch = _orchestrator(yes)
    if orch.resume_point() is None:
        click.echo("所有步骤均已完成。")
        return

    last = None
    for result in orch.auto_continue(_resolve_mode(dry_run)):
        _echo_result(result)
        last = result

    if last is None or last.done:
        click.echo("所有步骤均已完成。")
        return
    click.echo(f"执行已停止于 {last.step_id}，详见日志: {_log_hint()}")
    if last.outcome is StepOutcome.FAILED:
        raise SystemExit(1)


@click.command()
@click.argument("step_id")
@_mode_option
@_yes_option
def step(step_id: str, dry_run: bool | None, yes: bool) -> None:
    """只执行指定步骤（可重复执行）"""
    result = _orchestrator(yes).run_step(step_id, _resolve_mode(dry_run))
    _echo_result(result)
    if result.done:
        return
    click.echo(f"详见日志: {_log_hint()}，处理后可重新执行该步骤。")
    if result.outcome is StepOutcome.FAILED:
        raise SystemExit(1)


@click.command()
def status() -> None:
    """查看当前进度"""
    c = _svc()
    s = c.orchestrator.status()
    click.echo(f"最后完成步骤: {s['last_completed_step'] or '<无>'}")
    click.echo(f"最后执行时间: {s['last_run_time'] or '<无>'}")
    click.echo(f"进度: {s['completed']}/{s['total']}")
    click.echo(f"续跑点: {s['resume_point'] or '全部完成'}")
    click.echo(f"DRY_RUN: {1 if s['dry_run'] else 0}")
    click.echo(f"状态文件: {c.settings.state_path}")


@click.command()
@_yes_option
def reset(yes: bool) -> None:
    """清空进度，下次从第一个步骤开始"""
    if not yes:
        click.confirm("确定清空进度状态?", abort=True)
    _svc().state_store.reset()
    click.echo("进度已清空。")
