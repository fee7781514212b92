"""Logging configuration for the backup scheduler.

Configures the root logger with:
- A custom TRACE level.
- Console output (always).
- Optional rotating file output under `log_dir`, plus an error-only file for
  quick triage of failed backup cycles.

Calling `configure_logging` more than once is a no-op.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


TRACE_LEVEL_NUM = 5
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _install_trace_level() -> None:
    """Install the TRACE logging level and `Logger.trace` helper."""

    if logging.getLevelName(TRACE_LEVEL_NUM) != "TRACE":
        logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")

    if not hasattr(logging.Logger, "trace"):

        def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
            if self.isEnabledFor(TRACE_LEVEL_NUM):
                self._log(TRACE_LEVEL_NUM, message, args, **kwargs)

        logging.Logger.trace = trace  # type: ignore[attr-defined]


def resolve_level(log_level: str, *, debug: bool = False) -> int:
    """Translate a level name into a numeric logging level.

    Args:
        log_level: Level name (e.g. INFO, DEBUG, TRACE). Empty means default.
        debug: When True and no level is given, DEBUG is used.

    Returns:
        int: Numeric level.

    Raises:
        ValueError: When the level name is unknown.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        name = "DEBUG" if debug else "INFO"

    if name == "TRACE":
        return TRACE_LEVEL_NUM

    level = getattr(logging, name, None)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    *,
    log_dir: str = "",
    log_level: str = "INFO",
    debug: bool = False,
    log_filename: str = "pg-s3-backup.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure process-wide logging.

    Args:
        log_dir: Directory for log files. Empty disables file logging.
        log_level: Root log level name.
        debug: Use DEBUG when `log_level` is empty.
        log_filename: Main log file name within `log_dir`.
        max_bytes: Rotate log files after this size.
        backup_count: Number of rotated files to keep.

    Raises:
        ValueError: When `log_level` is invalid.
    """

    _install_trace_level()

    root = logging.getLogger()
    if getattr(root, "_pg_s3_backup_logging_configured", False):
        return

    level = resolve_level(log_level, debug=debug)
    root.setLevel(level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir) / log_filename
        error_log_path = log_path.with_name(f"{log_path.stem}.error{log_path.suffix or '.log'}")
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            root.addHandler(_rotating_handler(log_path, level, formatter, max_bytes, backup_count))
            root.addHandler(_rotating_handler(error_log_path, logging.ERROR, formatter, max_bytes, backup_count))
        except OSError:
            logging.getLogger(__name__).warning(
                "Failed to configure file logging under %s; continuing with console-only logging",
                log_dir,
            )

    # botocore is chatty at DEBUG; keep it at WARNING unless tracing.
    if level > TRACE_LEVEL_NUM:
        for name in ("botocore", "boto3", "s3transfer", "urllib3"):
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    root._pg_s3_backup_logging_configured = True  # type: ignore[attr-defined]


def configure_logging_or_default(**kwargs) -> None:
    """Configure logging, falling back to plain console logging on failure.

    Accepts the same keyword arguments as `configure_logging`.
    """

    try:
        configure_logging(**kwargs)
    except Exception as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=DATE_FORMAT)
        logging.getLogger(__name__).warning("Invalid logging configuration, using defaults: %s", exc)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger instance.

    Args:
        name: Logger name.

    Returns:
        logging.Logger: Logger instance.
    """

    return logging.getLogger(name or __name__)
