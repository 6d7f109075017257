"""应用设置

状态目录、各持久化文件和目录文件的路径集中在 Settings 中，
支持从 YAML 文件加载 + 编程式覆盖。部署参数（DRY_RUN 等）不在这里，
由 ConfigStore 管理。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from provisioner.core.exceptions import ConfigError
from provisioner.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "configs/default.yml"


@dataclass
class Settings:
    """应用全局设置"""

    # 目录
    state_dir: str = "/root/provisioner/state"

    # 持久化文件（留空则放在 state_dir 下）
    state_file: str = ""
    config_file: str = ""
    event_log: str = ""
    log_file: str = ""

    # 目录文件
    steps_file: str = "configs/steps.yml"
    checks_file: str = "configs/checks.yml"

    # 日志查看默认行数
    log_tail_lines: int = 200

    extra: dict = field(default_factory=dict)

    def _in_state_dir(self, value: str, default_name: str) -> Path:
        return Path(value) if value else Path(self.state_dir) / default_name

    @property
    def state_path(self) -> Path:
        return self._in_state_dir(self.state_file, "install.state.yml")

    @property
    def config_path(self) -> Path:
        return self._in_state_dir(self.config_file, "install.conf.yml")

    @property
    def event_log_path(self) -> Path:
        return self._in_state_dir(self.event_log, "events.jsonl")

    @property
    def log_path(self) -> Path:
        return self._in_state_dir(self.log_file, "install.log")

    @classmethod
    def from_file(cls, path: str = DEFAULT_SETTINGS_FILE) -> Settings:
        """从 YAML 文件加载，不存在则返回默认值"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"读取设置文件失败: {path}: {e}") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        settings = cls(**matched)
        settings.extra = {k: v for k, v in data.items() if k not in known}
        return settings

    def to_dict(self) -> dict:
        return asdict(self)


# 由 CLI 入口显式初始化；编排器本身不读取全局设置
_current: Settings | None = None


def get_settings() -> Settings:
    """获取当前设置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Settings()
    return _current


def init_settings(path: str = DEFAULT_SETTINGS_FILE) -> Settings:
    """从文件初始化全局设置"""
    global _current  # noqa: PLW0603
    _current = Settings.from_file(path)
    logger.debug("设置已加载: %s", path)
    return _current
