"""进度状态存储

记录最近完成的步骤与时间，是断点续跑的持久化基础：
  - commit() 原子替换状态文件：要么完整生效，要么完全没有发生
  - 主体成功但 commit 前进程中断 → 下次加载时该步骤仍视为未完成（会重跑）
  - commit 之后中断 → 该步骤永不重跑

文件格式 (YAML):
  last_completed_step: 03_nic_ifupdown
  last_run_time: '2026-01-01 20:00:00'
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from provisioner.core.exceptions import PersistenceError
from provisioner.core.models import PersistentState, now_timestamp
from provisioner.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

FILE_HEADER = "provisioner progress state (auto-generated, do not edit while running)"


class StateStore:
    """进度状态存储（单写者：只有编排器调用 commit）"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> PersistentState:
        """读取状态，文件不存在时返回空状态"""
        try:
            data = load_yaml(self.path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise PersistenceError(f"读取状态失败: {self.path}: {e}") from e
        return PersistentState.from_dict(data)

    def commit(self, step_id: str, timestamp: str | None = None) -> PersistentState:
        """原子记录步骤完成

        未知字段从当前文件继承，保证新版本写入的字段不会丢失。
        """
        current = self.load()
        state = PersistentState(
            last_completed_step=step_id,
            last_run_time=timestamp or now_timestamp(),
            extra=current.extra,
        )
        self._write(state)
        logger.info("状态已提交: %s @ %s", step_id, state.last_run_time)
        return state

    def reset(self) -> PersistentState:
        """清空进度（保留未知字段）

        状态文件已损坏时直接写入空状态，reset 是损坏后唯一的恢复手段。
        """
        try:
            extra = self.load().extra
        except PersistenceError as e:
            logger.warning("状态文件无法读取，按空状态重置: %s", e)
            extra = {}
        state = PersistentState(extra=extra)
        self._write(state)
        logger.info("进度状态已重置: %s", self.path)
        return state

    def _write(self, state: PersistentState) -> None:
        try:
            save_yaml(self.path, state.to_dict(), header=FILE_HEADER)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"写入状态失败: {self.path}: {e}") from e
