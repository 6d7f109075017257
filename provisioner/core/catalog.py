"""步骤目录 (steps.yml)

声明式定义步骤顺序与命令，格式:

  config_defaults:          # 追加到部署参数模式的键及其默认值
    DP_VERSION: "6.2.1"
  steps:
    - id: 09_dp_download
      name: "09. DP Image Download"
      commands:
        - "mkdir -p /stellar/images"
        - "wget -q {{ACPS_BASE_URL}}/dp/{{DP_VERSION}}/image.qcow2 -O /stellar/images/dp.qcow2"
      append_lines:
        - path: /etc/fstab
          line: "/dev/vg/dl /stellar/dl ext4 defaults 0 0"
          marker: "\\s/stellar/dl\\s"

命令中的 {{KEY}} 在执行时由部署参数快照替换。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from provisioner.core.exceptions import ConfigError, StepFailure
from provisioner.core.models import BodyResult, StepContext
from provisioner.core.steps import StepRegistry
from provisioner.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render(template: str, config: Mapping[str, Any]) -> str:
    """替换 {{KEY}} 占位符，未定义的键视为步骤失败"""
    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in config:
            raise StepFailure(f"命令引用了未定义的配置项: {key}")
        return str(config[key])
    return _PLACEHOLDER.sub(_sub, template)


@dataclass
class LineAppend:
    """幂等追加到文件的一行"""

    path: str
    line: str
    marker: str = ""


@dataclass
class CommandStep:
    """按顺序执行命令列表的步骤主体"""

    commands: list[str] = field(default_factory=list)
    append_lines: list[LineAppend] = field(default_factory=list)

    def __call__(self, config: Mapping[str, Any], ctx: StepContext) -> BodyResult:
        for cmd in self.commands:
            ctx.runner.run(render(cmd, config))
        for item in self.append_lines:
            ctx.runner.append_line_if_missing(
                render(item.path, config),
                render(item.line, config),
                marker=render(item.marker, config) or None,
            )
        return BodyResult.ok()


@dataclass
class Catalog:
    """解析后的步骤目录"""

    registry: StepRegistry
    config_defaults: dict[str, Any] = field(default_factory=dict)


def _parse_step(entry: Any, position: int) -> tuple[str, str, CommandStep]:
    if not isinstance(entry, dict):
        raise ConfigError(f"第 {position} 个步骤定义不是映射")
    step_id = str(entry.get("id", "")).strip()
    if not step_id:
        raise ConfigError(f"第 {position} 个步骤缺少 id")
    name = str(entry.get("name", step_id))

    commands = entry.get("commands") or []
    if not isinstance(commands, list):
        raise ConfigError(f"步骤 {step_id}: commands 必须是列表")

    appends: list[LineAppend] = []
    for raw in entry.get("append_lines") or []:
        if not isinstance(raw, dict) or not raw.get("path") or not raw.get("line"):
            raise ConfigError(f"步骤 {step_id}: append_lines 需要 path 与 line")
        appends.append(LineAppend(
            path=str(raw["path"]), line=str(raw["line"]),
            marker=str(raw.get("marker", "")),
        ))

    body = CommandStep(commands=[str(c) for c in commands], append_lines=appends)
    return step_id, name, body


def load_catalog(path: str | Path) -> Catalog:
    """从 YAML 加载步骤目录；文件不存在时返回空目录"""
    p = Path(path)
    try:
        data = load_yaml(p)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"读取步骤目录失败: {p}: {e}") from e

    registry = StepRegistry()
    for position, entry in enumerate(data.get("steps") or [], 1):
        step_id, name, body = _parse_step(entry, position)
        registry.register(step_id, name, body)

    defaults = data.get("config_defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigError(f"{p}: config_defaults 必须是映射")

    if not p.exists():
        logger.warning("步骤目录不存在: %s", p)
    else:
        logger.debug("已加载 %d 个步骤: %s", len(registry), p)
    return Catalog(registry=registry, config_defaults=dict(defaults))
