"""Logging bootstrap for branchat.

// [LAW:single-enforcer] Handler wiring happens here and nowhere else.

Every module logs through `logging.getLogger(__name__)`; all of them sit
under the "branchat" logger, which gets a rotating file handler and, when
the terminal is not owned by the TUI, a stderr handler.

Environment:
    BRANCHAT_LOG_LEVEL  level name (default INFO)
    BRANCHAT_LOG_DIR    directory for per-run log files
    BRANCHAT_LOG_FILE   explicit log file path (wins over the directory)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

ROOT_LOGGER_NAME = "branchat"
DEFAULT_LOG_DIR = "~/.local/share/branchat/logs"
MAX_LOG_BYTES = 20 * 1024 * 1024
LOG_BACKUPS = 5


@dataclass(frozen=True)
class LoggingRuntime:
    """Resolved logging configuration."""

    level_name: str
    level: int
    file_path: str
    to_stderr: bool


_RUNTIME: LoggingRuntime | None = None


def parse_level(raw: str | None) -> tuple[str, int]:
    """Level name and number for raw; unknown names fall back to INFO."""
    normalized = str(raw or "INFO").strip().upper()
    level = getattr(logging, normalized, None)
    if not isinstance(level, int):
        level = logging.INFO
    return logging.getLevelName(level), level


def default_log_path() -> str:
    log_dir = Path(os.path.expanduser(os.environ.get("BRANCHAT_LOG_DIR", DEFAULT_LOG_DIR)))
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return str(log_dir / f"branchat-{ts}-{os.getpid()}.log")


def _stderr_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s %(message)s"))
    return handler


def _file_handler(level: int, file_path: str) -> logging.Handler:
    handler = RotatingFileHandler(
        file_path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    return handler


def configure(*, to_stderr: bool = False) -> LoggingRuntime:
    """Wire the branchat logger. Repeated calls return the first runtime."""
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    level_name, level = parse_level(os.environ.get("BRANCHAT_LOG_LEVEL"))
    file_path = os.environ.get("BRANCHAT_LOG_FILE") or default_log_path()
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(_file_handler(level, file_path))
    if to_stderr:
        logger.addHandler(_stderr_handler(level))

    logging.captureWarnings(True)

    _RUNTIME = LoggingRuntime(
        level_name=level_name, level=level, file_path=file_path, to_stderr=to_stderr
    )
    logger.info("logging configured level=%s file=%s", level_name, file_path)
    return _RUNTIME


def get_runtime() -> LoggingRuntime | None:
    """The configured runtime, or None before configure()."""
    return _RUNTIME


def reset() -> None:
    """Detach and close the branchat handlers so configure() can run again."""
    global _RUNTIME
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    _RUNTIME = None
