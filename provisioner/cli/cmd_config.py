"""CLI — 部署参数管理"""

from __future__ import annotations

import click

from provisioner.cli import _svc
from provisioner.core.config_store import is_secret_key


def register(group: click.Group) -> None:
    group.add_command(config_group)


@click.group(name="config")
def config_group() -> None:
    """部署参数（DRY_RUN 等）"""


@config_group.command(name="show")
def config_show() -> None:
    """显示当前部署参数"""
    store = _svc().config_store
    for key in store.keys():
        value = store.get(key)
        if is_secret_key(key) and value:
            value = "********"
        click.echo(f"  {key:28s} {value if value not in (None, '') else '<未设置>'}")


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--yes", "-y", is_flag=True, help="跳过确认")
def config_set(key: str, value: str, yes: bool) -> None:
    """修改单个部署参数（需确认，立即保存）"""
    store = _svc().config_store
    current = store.get(key)
    if not yes:
        click.confirm(f"将 {key} 从 {current!r} 修改为 {value!r}?", abort=True)
    new_value = store.set(key, value)
    click.echo(f"{key} 已设置为 {new_value!r}")
