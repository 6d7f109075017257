"""确认门

编排器在每个步骤主体运行前调用确认门，这是唯一合法的阻塞点（无超时）。
DECLINED 与 CANCELED 对编排器等价，都映射为步骤结果 CANCELED。
"""

from __future__ import annotations

from typing import Protocol

from provisioner.core.models import Decision, RunMode, Step


class ConfirmationGate(Protocol):
    """确认门协议"""

    def confirm(self, step: Step, mode: RunMode) -> Decision:
        """展示步骤摘要并返回用户决定"""
        ...


class AutoConfirmGate:
    """非交互确认门（--yes 或自动化流水线）"""

    def __init__(self, decision: Decision = Decision.CONFIRMED) -> None:
        self.decision = decision

    def confirm(self, step: Step, mode: RunMode) -> Decision:
        return self.decision
