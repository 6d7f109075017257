"""部署参数存储

有序的键值配置，持久化为 YAML：
  - 模式只追加：已有键永不删除/改名，新键提供保持旧行为的默认值
  - 读取时遇到的未知键在下次保存时原样写回（向前兼容）
  - 写入只能通过 set()，调用方负责事先取得用户确认
  - save() 原子写入，中断时保留上一版有效文件
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from provisioner.core.exceptions import ConfigError, PersistenceError
from provisioner.core.models import RunMode
from provisioner.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

# 编排器自身依赖的键；步骤目录可以追加自己的键
DEFAULTS: dict[str, Any] = {
    "DRY_RUN": 1,
    "ENABLE_AUTO_REBOOT": 1,
    "AUTO_REBOOT_AFTER_STEP_ID": "",
}

FILE_HEADER = "provisioner deployment configuration (auto-generated)"

# 键名包含这些片段的参数视为敏感值：显示时掩码，命令日志中替换
SECRET_HINTS = ("PASSWORD", "SECRET", "TOKEN")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def is_secret_key(key: str) -> bool:
    return any(h in key.upper() for h in SECRET_HINTS)


def _coerce(key: str, value: Any, template: Any) -> Any:
    """按默认值的类型转换输入（CLI 传入的都是字符串）"""
    if template is None or isinstance(value, type(template)):
        return value
    text = str(value).strip()
    if isinstance(template, bool):
        if text.lower() in _TRUE | _FALSE:
            return text.lower() in _TRUE
        raise ConfigError(f"{key} 需要布尔值，实际: {value!r}")
    if isinstance(template, int):
        if text.lower() in _TRUE | _FALSE:
            return int(text.lower() in _TRUE)
        try:
            return int(text)
        except ValueError as e:
            raise ConfigError(f"{key} 需要整数值，实际: {value!r}") from e
    if isinstance(template, str):
        return str(value)
    return value


class ConfigStore:
    """部署参数存储

    Args:
        path: YAML 配置文件路径
        defaults: 追加/覆盖到 DEFAULTS 之后的有序默认值（通常来自步骤目录）
    """

    def __init__(self, path: str | Path, defaults: Mapping[str, Any] | None = None) -> None:
        self.path = Path(path)
        self.defaults: dict[str, Any] = dict(DEFAULTS)
        self.defaults.update(defaults or {})
        self._values: dict[str, Any] | None = None

    # ---- 读取 ----

    def load(self) -> dict[str, Any]:
        """读取配置（幂等，只读）

        返回默认值与文件内容合并后的有序副本：先按默认值顺序，
        再追加文件中出现的未知键。
        """
        try:
            on_disk = load_yaml(self.path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise PersistenceError(f"读取配置失败: {self.path}: {e}") from e

        values = dict(self.defaults)
        for key, value in on_disk.items():
            values[key] = value
        self._values = values
        return dict(values)

    def _ensure_loaded(self) -> dict[str, Any]:
        if self._values is None:
            self.load()
        assert self._values is not None
        return self._values

    def get(self, key: str, default: Any = None) -> Any:
        return self._ensure_loaded().get(key, default)

    def snapshot(self) -> Mapping[str, Any]:
        """只读快照，交给步骤主体"""
        return MappingProxyType(dict(self._ensure_loaded()))

    def keys(self) -> list[str]:
        return list(self._ensure_loaded())

    def secret_values(self) -> list[str]:
        """敏感参数的当前值（空值除外）"""
        return [
            str(v) for k, v in self._ensure_loaded().items()
            if is_secret_key(k) and v not in ("", None)
        ]

    @property
    def dry_run(self) -> bool:
        return _coerce("DRY_RUN", self.get("DRY_RUN", 1), 1) == 1

    @property
    def mode(self) -> RunMode:
        return RunMode.DRY_RUN if self.dry_run else RunMode.REAL

    @property
    def reboot_after(self) -> frozenset[str]:
        """完成后需要自动重启的步骤 ID"""
        enabled = _coerce("ENABLE_AUTO_REBOOT", self.get("ENABLE_AUTO_REBOOT", 1), 1)
        if enabled != 1:
            return frozenset()
        return frozenset(str(self.get("AUTO_REBOOT_AFTER_STEP_ID", "")).split())

    # ---- 写入 ----

    def set(self, key: str, value: Any) -> Any:
        """设置单个键并立即持久化，返回转换后的值

        只接受默认值表或配置文件中已出现的键。
        """
        values = self._ensure_loaded()
        if key not in values:
            raise ConfigError(f"未知配置项: {key}")
        template = self.defaults.get(key, values.get(key))
        coerced = _coerce(key, value, template)

        previous = values.get(key)
        values[key] = coerced
        try:
            self.save()
        except PersistenceError:
            values[key] = previous
            raise
        logger.info("配置已更新: %s", key)
        return coerced

    def save(self) -> None:
        """原子写入当前配置"""
        values = self._ensure_loaded()
        try:
            save_yaml(self.path, values, header=FILE_HEADER)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"写入配置失败: {self.path}: {e}") from e
