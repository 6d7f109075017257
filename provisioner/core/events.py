"""执行事件流

每条 ExecutionEvent 以 JSON 行追加写入事件文件并立即 flush，
同时镜像到 logging，保证事件顺序与实际执行顺序一致（不缓冲、不重排）。

文本行格式（与安装日志一致）:
  [2026-01-01 12:00:00] 03_nic_ifupdown START 03. NIC Naming ...
  [2026-01-01 12:00:01] 03_nic_ifupdown RUN-FAIL(2) ip link set ...
"""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path

from provisioner.core.exceptions import PersistenceError
from provisioner.core.models import EventKind, ExecutionEvent

logger = logging.getLogger(__name__)

_LEVELS = {
    EventKind.FAILED: logging.ERROR,
    EventKind.RUN_FAIL: logging.WARNING,
    EventKind.CANCELED: logging.WARNING,
}


class EventLog:
    """追加式事件日志

    path 为 None 时只保留在内存中（测试或纯 dry-run 预览）。
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._events: list[ExecutionEvent] = []
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def events(self) -> list[ExecutionEvent]:
        """本进程内已记录的事件（只读副本）"""
        return list(self._events)

    def emit(
        self,
        kind: EventKind,
        step_id: str,
        detail: str = "",
        *,
        rc: int | None = None,
        dry_run: bool = False,
    ) -> ExecutionEvent:
        """记录一条事件并返回"""
        event = ExecutionEvent(
            kind=kind, step_id=step_id, detail=detail, rc=rc, dry_run=dry_run,
        )
        self._append(event)
        return event

    def _append(self, event: ExecutionEvent) -> None:
        if self.path is not None:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")
                    f.flush()
            except OSError as e:
                raise PersistenceError(f"写入事件日志失败: {self.path}: {e}") from e
        self._events.append(event)
        logger.log(
            _LEVELS.get(event.kind, logging.INFO),
            "%s %s %s", event.step_id, event.label, event.detail,
            extra={"step_id": event.step_id},
        )

    def read_all(self) -> list[ExecutionEvent]:
        """从事件文件读取全部记录，跳过损坏的行"""
        if self.path is None:
            return self.events
        if not self.path.exists():
            return []
        events: list[ExecutionEvent] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(ExecutionEvent.from_dict(json.loads(line)))
                except (ValueError, KeyError) as e:
                    logger.warning("跳过损坏的事件行 %s:%d: %s", self.path, lineno, e)
        return events

    def tail(self, n: int = 200) -> list[str]:
        """最近 n 条事件的文本行"""
        return [format_event(e) for e in deque(self.read_all(), maxlen=n)]


def format_event(event: ExecutionEvent) -> str:
    """事件的单行文本表示"""
    prefix = "[DRY-RUN] " if event.dry_run and event.kind is EventKind.RUN else ""
    text = f"[{event.timestamp}] {event.step_id} {event.label}"
    if event.detail:
        text += f" {prefix}{event.detail}"
    return text
