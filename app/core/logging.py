from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message}\n{exception}"


def configure_logging() -> None:
    """Route loguru output to stdout and, when configured, the sync log file."""

    from app.core.config import get_settings

    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, colorize=False)

    log_path = get_settings().sync_log_path
    if not log_path:
        return
    log_path = log_path.expanduser()
    if not _ensure_log_path(log_path):
        return
    try:
        logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level="INFO",
            encoding="utf-8",
            enqueue=True,
        )
    except OSError as exc:
        logger.warning(f"SYNC LOG FILE DISABLED - unable to open file path={log_path} error={exc}")


def _format_meta(meta: dict[str, Any]) -> str:
    return " ".join(f"{key}={meta[key]}" for key in sorted(meta))


def _emit(level: str, message: str, meta: dict[str, Any]) -> None:
    if not meta:
        logger.log(level, message)
        return
    logger.bind(**meta).log(level, f"{message} | {_format_meta(meta)}")


def log_error(message: str, **meta: Any) -> None:
    _emit("ERROR", message, meta)


def log_warning(message: str, **meta: Any) -> None:
    _emit("WARNING", message, meta)


def log_info(message: str, **meta: Any) -> None:
    _emit("INFO", message, meta)


def log_debug(message: str, **meta: Any) -> None:
    _emit("DEBUG", message, meta)


def _ensure_log_path(path: Path) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning(
            f"SYNC LOG FILE DISABLED - unable to create directory path={path.parent} error={exc}"
        )
        return False
    return True
