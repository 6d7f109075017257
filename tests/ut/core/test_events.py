"""事件日志测试"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from provisioner.core.events import EventLog, format_event
from provisioner.core.exceptions import PersistenceError
from provisioner.core.models import EventKind, ExecutionEvent


class TestEventLog:
    def test_emit_appends_json_lines_in_order(self, tmp_path: Path) -> None:
        log = EventLog(tmp_path / "logs" / "events.jsonl")
        log.emit(EventKind.START, "01", "01. Hardware Detection")
        log.emit(EventKind.RUN_FAIL, "01", "lspci", rc=2)

        lines = (tmp_path / "logs" / "events.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(x)["kind"] for x in lines] == ["START", "RUN-FAIL"]
        assert json.loads(lines[1])["rc"] == 2

    def test_in_memory_only(self) -> None:
        log = EventLog()
        log.emit(EventKind.DONE, "01")
        assert [e.kind for e in log.read_all()] == [EventKind.DONE]

    def test_events_is_copy(self) -> None:
        log = EventLog()
        log.emit(EventKind.DONE, "01")
        log.events.clear()
        assert len(log.events) == 1

    def test_read_all_skips_corrupt_lines(self, tmp_path: Path) -> None:
        p = tmp_path / "events.jsonl"
        EventLog(p).emit(EventKind.START, "01")
        with open(p, "a", encoding="utf-8") as f:
            f.write("{not json\n\n")
            f.write(json.dumps({"kind": "NOPE", "step_id": "x"}) + "\n")
        EventLog(p).emit(EventKind.DONE, "01")

        assert [e.kind for e in EventLog(p).read_all()] == [EventKind.START, EventKind.DONE]

    def test_tail(self, tmp_path: Path) -> None:
        log = EventLog(tmp_path / "events.jsonl")
        for i in range(5):
            log.emit(EventKind.RUN, "01", f"cmd {i}")
        tail = log.tail(2)
        assert len(tail) == 2
        assert tail[-1].endswith("cmd 4")

    def test_tail_missing_file(self, tmp_path: Path) -> None:
        assert EventLog(tmp_path / "events.jsonl").tail() == []

    def test_write_failure(self, tmp_path: Path) -> None:
        log = EventLog(tmp_path / "events.jsonl")
        with patch("builtins.open", side_effect=OSError("ro")):
            with pytest.raises(PersistenceError):
                log.emit(EventKind.START, "01")
        assert log.events == []


class TestFormatEvent:
    def test_real(self) -> None:
        e = ExecutionEvent(
            kind=EventKind.RUN_FAIL, step_id="03", timestamp="2026-01-01 00:00:00",
            detail="ip link", rc=1,
        )
        assert format_event(e) == "[2026-01-01 00:00:00] 03 RUN-FAIL(1) ip link"

    def test_dry_run_marks_commands(self) -> None:
        e = ExecutionEvent(
            kind=EventKind.RUN, step_id="03", timestamp="2026-01-01 00:00:00",
            detail="ip link", dry_run=True,
        )
        assert format_event(e) == "[2026-01-01 00:00:00] 03 RUN [DRY-RUN] ip link"
