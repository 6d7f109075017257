"""provisioner 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常 (ProvisionerError) 统一转换为友好提示与非零退出码。
"""

from __future__ import annotations

import os
from typing import Any

import click

from provisioner import __version__
from provisioner.core.config import DEFAULT_SETTINGS_FILE, init_settings
from provisioner.core.exceptions import ProvisionerError
from provisioner.core.models import RunMode, Step
from provisioner.services.container import (
    ServiceContainer,
    get_container,
    set_container,
)
from provisioner.utils.logger import setup_logging
from provisioner.utils.shell import LocalExecutor


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _orchestrator(yes: bool) -> Any:
    """按确认方式装配编排器（--yes 自动确认，否则交互确认）"""
    from provisioner.core.gate import AutoConfirmGate
    container = _svc()
    if container.gate is None:
        if yes:
            container.gate = AutoConfirmGate()
        else:
            from provisioner.cli.prompts import QuestionaryGate
            container.gate = QuestionaryGate()
    return container.orchestrator


def _resolve_mode(dry_run: bool | None) -> RunMode | None:
    """--dry-run / --real 覆盖部署参数中的 DRY_RUN；未指定返回 None"""
    if dry_run is None:
        return None
    return RunMode.DRY_RUN if dry_run else RunMode.REAL


def host_reboot(step: Step) -> None:
    """真实模式下的自动重启：进度已提交，重启后从下一步续跑"""
    click.echo(f"步骤 {step.id} 已完成，系统即将自动重启。")
    LocalExecutor().execute("systemctl reboot")
    raise SystemExit(0)


class ProvisionerGroup(click.Group):
    """把业务异常转换为 ClickException"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ProvisionerError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


@click.group(cls=ProvisionerGroup)
@click.version_option(version=__version__)
@click.option(
    "--settings", "-s", "settings_file", default=DEFAULT_SETTINGS_FILE,
    envvar="PROVISIONER_SETTINGS", help="应用设置文件路径",
)
def main(settings_file: str) -> None:
    """provisioner - 可断点续跑的主机部署编排器"""
    settings = init_settings(settings_file)
    setup_logging(
        level=os.getenv("PROVISIONER_LOG_LEVEL", "INFO"),
        json_output=os.getenv("PROVISIONER_LOG_JSON", "") == "1",
        log_file=settings.log_path,
    )
    set_container(ServiceContainer(settings, echo=click.echo, reboot=host_reboot))


# 注册各领域子命令
from provisioner.cli.cmd_run import register as _reg_run  # noqa: E402
from provisioner.cli.cmd_validate import register as _reg_validate  # noqa: E402
from provisioner.cli.cmd_config import register as _reg_config  # noqa: E402
from provisioner.cli.cmd_misc import register as _reg_misc  # noqa: E402

_reg_run(main)
_reg_validate(main)
_reg_config(main)
_reg_misc(main)
