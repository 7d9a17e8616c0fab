from __future__ import annotations

import re
import sys
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from loguru import logger

from remote_fs_gateway.settings import GatewaySettings

_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?i)(password\s*[:=]\s*)([^\s]+)"), r"\1***"),
    (re.compile(r"(?i)(passwd\s*[:=]\s*)([^\s]+)"), r"\1***"),
    (re.compile(r"(?i)(passphrase\s*[:=]\s*)([^\s]+)"), r"\1***"),
    (re.compile(r"(?i)(token\s*[:=]\s*)([^\s]+)"), r"\1***"),
]


def redact(text: str) -> str:
    redacted = text
    for pattern, repl in _REDACTIONS:
        redacted = pattern.sub(repl, redacted)
    return redacted


def setup_logger(settings: GatewaySettings) -> None:
    try:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        log_dir = Path(settings.log_dir)
    except OSError:
        log_dir = Path(gettempdir()) / "remote-fs-gateway-logs"
        log_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()

    def patcher(record: Any) -> None:
        record["message"] = redact(record.get("message", ""))

    logger.configure(patcher=patcher)

    if getattr(sys.stderr, "isatty", lambda: False)():
        logger.add(
            sys.stderr,
            level=settings.log_level,
            colorize=True,
            backtrace=False,
            diagnose=False,
            enqueue=True,
        )

    # 全量日志与仅错误日志共用轮转策略
    for file_name, level in (("gateway.log", settings.log_level), ("error.log", "ERROR")):
        logger.add(
            str(log_dir / file_name),
            level=level,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            enqueue=True,
            backtrace=False,
            diagnose=False,
            encoding="utf-8",
        )
