"""Loguru setup for plugin processes.

stdout belongs to the handshake, so every sink here writes to stderr or a file.
"""

from __future__ import annotations

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger

from pluginwire.config.schema import LoggingConfig

_SINK_IDS: dict[str, int] = {}


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (grpc, asyncio) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Install the stderr sink, optional file sink and the stdlib bridge."""
    cfg = config or LoggingConfig()
    logger.remove()
    _SINK_IDS.clear()
    _SINK_IDS["stderr"] = logger.add(sys.stderr, level=cfg.level.upper(), backtrace=False, diagnose=False)
    if cfg.file:
        ensure_rotating_log_file(Path(cfg.file), level=cfg.level.upper())
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    logging.getLogger("grpc").setLevel(logging.INFO)


def ensure_rotating_log_file(path: Path, level: str = "INFO") -> Path:
    """Ensure a rotating log sink at path."""
    key = str(path)
    if key in _SINK_IDS:
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        key,
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[key] = sink_id
    return path
