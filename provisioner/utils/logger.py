"""provisioner 日志配置

普通文本或结构化 JSON 两种格式，可选同时写入安装日志文件。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出格式:
        {
            "timestamp": "2026-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "provisioner.core.orchestrator",
            "message": "...",
            "step_id": "03_nic_ifupdown" (仅当日志带 step_id 时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        step_id = getattr(record, "step_id", None)
        if step_id:
            entry["step_id"] = step_id
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _clear_handlers(root: logging.Logger) -> None:
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串
        json_output: True 时使用 JSONFormatter
        log_file: 额外追加写入的日志文件（目录自动创建）

    说明:
        - 控制台输出到 stderr，stdout 留给命令结果
        - 重复调用会先清理已有 handlers，避免重复输出
    """
    root = logging.getLogger()
    _clear_handlers(root)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    formatter: logging.Formatter = (
        JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT)
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def reset_logging() -> None:
    """清理根日志器的所有 handlers（测试中使用）"""
    _clear_handlers(logging.getLogger())
