"""Logging configuration for the VyOS config engine.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Performance timing helpers for sessions and connects

Environment Variables:
    VYOS_ENGINE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    VYOS_ENGINE_LOG_FILE: Path to log file (default: ~/.vyos-engine/engine.log)
    VYOS_ENGINE_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    VYOS_ENGINE_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from vyos_config_engine.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("connect")
    async def connect(self):
        ...

    # Or use context manager for sections:
    async with timed_section("execute_batch", device_id="vyos-edge"):
        ...
"""
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("vyos_engine.perf")
main_logger = logging.getLogger("vyos_engine")


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("VYOS_ENGINE_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".vyos-engine" / "engine.log"
    path_str = os.environ.get("VYOS_ENGINE_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(log_file: Optional[Path] = None) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects VYOS_ENGINE_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics
    """
    log_level = get_log_level()
    log_file = log_file or get_log_file()
    max_size_mb = int(os.environ.get("VYOS_ENGINE_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("VYOS_ENGINE_LOG_BACKUPS", "5"))

    # Create log directory if needed
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Main format: timestamp - logger - level - message
    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-30s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Performance format: focused on timing
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Console handler - respects configured level
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    # File handler - captures DEBUG and above (everything)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    # Performance file handler - separate file for easy analysis
    perf_log_file = log_file.parent / "engine-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    # Application loggers: vyos_engine.* and the package's module loggers
    for name in ("vyos_engine", "vyos_config_engine"):
        app_logger = logging.getLogger(name)
        app_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
        app_logger.addHandler(console_handler)
        app_logger.addHandler(file_handler)

    # Performance logger gets its own file; don't duplicate into engine.log
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.addHandler(console_handler)
    perf_logger.propagate = False

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _perf_line(operation: str, device_id: Optional[str], elapsed: float, status: str, extra: str = "") -> str:
    msg = f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {status}"
    if extra:
        msg += f" | {extra}"
    return msg


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator that logs the duration of a coroutine to the perf log.

    The device is taken from ``device_id`` or, failing that, from the
    ``device_id`` attribute of the bound instance.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            dev_id = device_id or getattr(args[0] if args else None, "device_id", None)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                perf_logger.warning(_perf_line(operation, dev_id, _elapsed_ms(start), f"FAIL: {e}"))
                raise
            perf_logger.info(_perf_line(operation, dev_id, _elapsed_ms(start), "OK"))
            return result

        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        device_id: Device identifier
        **extra: Additional context to log

    Usage:
        async with timed_section("execute_batch", device_id="vyos-edge", statements=7):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except BaseException as e:
        # CancelledError included so aborted sessions still show up
        perf_logger.warning(_perf_line(operation, device_id, _elapsed_ms(start), f"FAIL: {e!r}", extra_str))
        raise
    perf_logger.info(_perf_line(operation, device_id, _elapsed_ms(start), "OK", extra_str))
