"""CLI — 整体配置校验"""

from __future__ import annotations

import json

import click

from provisioner.cli import _svc
from provisioner.core.validation import render_summary


def register(group: click.Group) -> None:
    group.add_command(validate)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="输出 JSON（供自动化部署门禁使用）")
def validate(as_json: bool) -> None:
    """只读校验系统现状，存在 FAIL 项时退出码为 1"""
    report = _svc().validation.run_all()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        for r in report.results:
            click.echo(f"  [{r.severity.value:4s}] {r.check_id}: {r.message}")
        click.echo("")
        click.echo(render_summary(report))

    if report.blocking:
        raise SystemExit(1)
