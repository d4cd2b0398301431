from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "workplan"
LOG_FILE_NAME = "workplan.log.jsonl"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def _writable_log_dir(out_dir: str) -> Path | None:
    for log_dir in (Path(out_dir) / "logs", Path(gettempdir()) / "workplan-optimizer" / "logs"):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            probe = log_dir / ".writetest"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
            return log_dir
        except OSError:
            continue
    return None


def _formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "ts", "levelname": "level"},
    )


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    # Reloaders import the app twice; only attach handlers once.
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False
    formatter = _formatter()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    log_dir = _writable_log_dir(settings.out_dir) if settings.log_to_file else None
    if log_dir is not None:
        try:
            file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured record; ``event`` is both the message and a top-level key."""
    get_logger().log(level, event, extra={"event": event, **fields})


@contextmanager
def timed_stage(stage: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log ``<stage>_finished`` with ``duration_ms`` plus whatever the caller adds to the yielded dict."""
    extra: dict[str, Any] = dict(fields)
    t0 = time.perf_counter()
    try:
        yield extra
    finally:
        log_event(
            f"{stage}_finished",
            stage=stage,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
            **extra,
        )
