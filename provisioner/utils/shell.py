"""Shell 命令执行工具

CommandExecutor 协议抽象子进程调用，测试时注入 mock 实现即可，无需 patch subprocess。
CommandRunner 在执行器之上叠加执行模式与事件记录：
  - REAL:    记录 RUN → 执行 → RUN-OK / RUN-FAIL(rc)
  - DRY_RUN: 记录 RUN → 打印 "[DRY-RUN] cmd" 而不执行 → RUN-OK
两种模式产生的事件形状相同，只有底层动作是否发生不同。
写入事件、回显与异常的文本中，redact 列出的敏感值一律替换为 ********。
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from provisioner.core.exceptions import ExecutionError
from provisioner.core.models import EventKind, RunMode

if TYPE_CHECKING:
    from provisioner.core.events import EventLog

logger = logging.getLogger(__name__)

REDACTED = "********"


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


class LocalExecutor:
    """本地执行器：字符串命令交给 bash 解释（支持管道与重定向）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = ["/bin/bash", "-c", cmd] if isinstance(cmd, str) else cmd
        r = subprocess.run(
            args, capture_output=True, text=True,
            env=env, check=False, timeout=timeout,
        )
        return CommandResult(
            returncode=r.returncode, stdout=r.stdout, stderr=r.stderr,
        )


# =========================================================================
# 模式感知的命令运行器
# =========================================================================

class CommandRunner:
    """步骤主体唯一的命令出口

    Args:
        step_id: 所属步骤，写入每条事件
        mode: 执行模式
        events: 事件日志
        executor: 底层执行器（默认 LocalExecutor）
        echo: 可选输出回调，dry-run 时打印将要执行的命令
        redact: 不得出现在事件、回显和异常信息中的敏感值（如密码）
    """

    def __init__(
        self,
        step_id: str,
        mode: RunMode,
        events: EventLog,
        executor: CommandExecutor | None = None,
        echo: Callable[[str], None] | None = None,
        redact: Iterable[str] | None = None,
    ) -> None:
        self.step_id = step_id
        self.mode = mode
        self.events = events
        self.executor = executor or LocalExecutor()
        self.echo = echo
        # 长值优先替换
        self.redact = sorted({s for s in redact or () if s}, key=len, reverse=True)

    @property
    def dry_run(self) -> bool:
        return self.mode.is_dry_run

    def scrub(self, text: str) -> str:
        for secret in self.redact:
            text = text.replace(secret, REDACTED)
        return text

    def _show(self, text: str) -> None:
        if self.echo is not None:
            self.echo(text)

    def run(
        self,
        cmd: str | list[str],
        *,
        check: bool = True,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行（或模拟执行）一条命令

        check=True 时非零退出码抛出 ExecutionError。
        """
        text = self.scrub(cmd if isinstance(cmd, str) else " ".join(cmd))
        self.events.emit(EventKind.RUN, self.step_id, text, dry_run=self.dry_run)

        if self.dry_run:
            self._show(f"[DRY-RUN] {text}")
            self.events.emit(EventKind.RUN_OK, self.step_id, text, dry_run=True)
            return CommandResult(returncode=0)

        self._show(f"[RUN] {text}")
        try:
            result = self.executor.execute(cmd, env=env, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            result = CommandResult(returncode=127, stderr=str(e))

        if result.success:
            self.events.emit(EventKind.RUN_OK, self.step_id, text)
            return result

        self.events.emit(
            EventKind.RUN_FAIL, self.step_id, text, rc=result.returncode,
        )
        if check:
            stderr = self.scrub(result.stderr.strip()[:500])
            raise ExecutionError(
                f"命令失败 (rc={result.returncode}): {text}"
                + (f": {stderr}" if stderr else ""),
                returncode=result.returncode,
            )
        return result

    def append_line_if_missing(
        self, path: str | Path, line: str, marker: str | None = None,
    ) -> bool:
        """幂等追加一行文本（典型用法：/etc/fstab 挂载项）

        Args:
            path: 目标文件
            line: 要追加的行
            marker: 判定已存在的正则；缺省时按整行精确匹配

        Returns:
            True 表示追加（或 dry-run 下将会追加），False 表示已存在
        """
        p = Path(path)
        existing = p.read_text(encoding="utf-8") if p.exists() else ""
        pattern = marker or rf"^{re.escape(line)}$"
        if re.search(pattern, existing, re.MULTILINE):
            logger.info("%s: 条目已存在，跳过追加: %s", p, self.scrub(line))
            return False

        detail = self.scrub(f"append to {p}: {line}")
        self.events.emit(EventKind.RUN, self.step_id, detail, dry_run=self.dry_run)
        if self.dry_run:
            self._show(f"[DRY-RUN] {detail}")
        else:
            self._show(f"[RUN] {detail}")
            try:
                with open(p, "a", encoding="utf-8") as f:
                    if existing and not existing.endswith("\n"):
                        f.write("\n")
                    f.write(line + "\n")
            except OSError as e:
                self.events.emit(EventKind.RUN_FAIL, self.step_id, detail, rc=1)
                raise ExecutionError(f"追加失败: {p}: {e}") from e
        self.events.emit(EventKind.RUN_OK, self.step_id, detail, dry_run=self.dry_run)
        return True
