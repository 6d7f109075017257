"""CLI — 步骤列表、日志查看、交互菜单"""

from __future__ import annotations

import click

from provisioner.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(steps)
    group.add_command(log)
    group.add_command(menu)


@click.command()
def steps() -> None:
    """列出步骤目录及完成情况"""
    c = _svc()
    registry = c.registry
    if not len(registry):
        click.echo(f"步骤目录为空: {c.settings.steps_file}")
        return
    done_upto = registry.index_of(c.state_store.load().last_completed_step)
    for idx, s in enumerate(registry):
        mark = "x" if idx <= done_upto else " "
        click.echo(f"  [{mark}] {s.id:24s} {s.name}")


@click.command()
@click.option(
    "--lines", "-n", default=None, type=click.IntRange(min=1),
    help="显示最近 N 条事件（缺省按设置 log_tail_lines）",
)
def log(lines: int | None) -> None:
    """查看安装日志（步骤与命令事件）"""
    c = _svc()
    entries = c.events.tail(c.settings.log_tail_lines if lines is None else lines)
    if not entries:
        click.echo("日志尚不存在。")
        return
    for line in entries:
        click.echo(line)


@click.command()
def menu() -> None:
    """交互式主菜单"""
    from provisioner.cli.interactive import InteractiveMenu
    InteractiveMenu(_svc()).run()
