"""YAML 持久化工具

状态文件与配置文件共用的读写入口：
  - atomic_write: 同目录临时文件 + fsync + os.replace，中断时旧文件保持完整
  - load_yaml: 读取映射类型的 YAML，缺失/空文件视为空映射
  - save_yaml: 保持键顺序的原子写入
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 状态/配置文件都很小，超过此大小视为异常文件
MAX_YAML_SIZE = 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """原子写入文本文件

    参数:
        path: 目标文件路径
        content: 完整文件内容

    异常:
        OSError: 写入、同步或替换失败（目标文件保持原样）

    实现:
        1. 在目标目录创建临时文件（保证 rename 不跨文件系统）
        2. 写入并 fsync，确保内容落盘
        3. os.replace 原子替换目标文件
        4. 任一步骤失败则删除临时文件并重新抛出
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射

    参数:
        path: YAML 文件路径

    返回:
        dict: 按文件中的键顺序返回；文件不存在、为空或顶层不是映射时返回空字典

    异常:
        yaml.YAMLError: 内容无法解析
        OSError: 读取失败
        ValueError: 文件超过 MAX_YAML_SIZE
    """
    p = Path(path)
    if not p.exists():
        return {}

    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"YAML 文件过大: {p} ({size} 字节)")

    with open(p, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "%s 顶层不是映射 (实际类型: %s)，按空文件处理",
            path, type(data).__name__,
        )
        return {}
    return data


def dump_yaml(data: Any, header: str = "") -> str:
    """序列化为 YAML 文本，保持键顺序"""
    body = yaml.safe_dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )
    if header:
        lines = [f"# {line}" if line else "#" for line in header.splitlines()]
        return "\n".join(lines) + "\n" + body
    return body


def save_yaml(path: str | Path, data: Any, header: str = "") -> None:
    """原子写入 YAML 文件

    参数:
        path: 目标路径
        data: 可序列化对象
        header: 可选的文件头注释（每行自动加 "# "）
    """
    atomic_write(Path(path), dump_yaml(data, header=header))
