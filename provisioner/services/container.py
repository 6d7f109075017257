"""服务容器 — 统一装配存储、事件日志、步骤目录、校验引擎与编排器

同一容器内的实例共享（一个会话只加载一次配置）。
CLI 通过 get_container() 获取，测试直接构造并注入 Settings / 确认门 / 执行器。

依赖关系（→ 表示依赖）:
  orchestrator → registry, state_store, config_store, events
  config_store → catalog（步骤目录追加的默认参数）
  validation   独立，不接触进度状态与部署参数

用法:
    container = ServiceContainer(settings=Settings(state_dir="/tmp/st"))
    for result in container.orchestrator.auto_continue():
        ...
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from provisioner.core.catalog import Catalog
    from provisioner.core.config import Settings
    from provisioner.core.config_store import ConfigStore
    from provisioner.core.events import EventLog
    from provisioner.core.gate import ConfirmationGate
    from provisioner.core.models import Step
    from provisioner.core.orchestrator import Orchestrator
    from provisioner.core.state import StateStore
    from provisioner.core.steps import StepRegistry
    from provisioner.core.validation import ValidationEngine
    from provisioner.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器

    Args:
        settings: 应用设置，缺省使用全局 get_settings()
        gate: 步骤确认门，缺省自动确认
        executor: 命令执行器（步骤与校验共用）
        echo: 命令输出回调
        reboot: 自动重启回调
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        gate: ConfirmationGate | None = None,
        executor: CommandExecutor | None = None,
        echo: Callable[[str], None] | None = None,
        reboot: Callable[[Step], None] | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if settings is None:
            from provisioner.core.config import get_settings
            settings = get_settings()
        self._settings = settings
        self.gate = gate
        self.executor = executor
        self.echo = echo
        self.reboot = reboot

    @property
    def settings(self) -> Settings:
        return self._settings

    # ---- 目录 ----

    @property
    def catalog(self) -> Catalog:
        if "catalog" not in self._instances:
            from provisioner.core.catalog import load_catalog
            self._instances["catalog"] = load_catalog(self._settings.steps_file)
        return self._instances["catalog"]  # type: ignore[return-value]

    @property
    def registry(self) -> StepRegistry:
        return self.catalog.registry

    # ---- 持久化 ----

    @property
    def config_store(self) -> ConfigStore:
        if "config_store" not in self._instances:
            from provisioner.core.config_store import ConfigStore
            store = ConfigStore(
                self._settings.config_path,
                defaults=self.catalog.config_defaults,
            )
            store.load()
            self._instances["config_store"] = store
        return self._instances["config_store"]  # type: ignore[return-value]

    @property
    def state_store(self) -> StateStore:
        if "state_store" not in self._instances:
            from provisioner.core.state import StateStore
            self._instances["state_store"] = StateStore(self._settings.state_path)
        return self._instances["state_store"]  # type: ignore[return-value]

    @property
    def events(self) -> EventLog:
        if "events" not in self._instances:
            from provisioner.core.events import EventLog
            self._instances["events"] = EventLog(self._settings.event_log_path)
        return self._instances["events"]  # type: ignore[return-value]

    # ---- 引擎 ----

    @property
    def orchestrator(self) -> Orchestrator:
        if "orchestrator" not in self._instances:
            from provisioner.core.orchestrator import Orchestrator
            self._instances["orchestrator"] = Orchestrator(
                self.registry, self.state_store, self.config_store, self.events,
                self.gate, executor=self.executor, echo=self.echo,
                reboot=self.reboot,
            )
        return self._instances["orchestrator"]  # type: ignore[return-value]

    @property
    def validation(self) -> ValidationEngine:
        if "validation" not in self._instances:
            from provisioner.core.validation import load_checks
            self._instances["validation"] = load_checks(
                self._settings.checks_file, executor=self.executor,
            )
        return self._instances["validation"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer（未初始化则按全局设置构造）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def set_container(container: ServiceContainer) -> None:
    """替换全局容器（CLI 入口按命令行参数构造后注册）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = container


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
