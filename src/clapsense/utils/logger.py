"""clapsense logging: Rich console + daily-rotated file logs.

The console shows the configured level; the file always receives DEBUG.
Individual modules can be raised or lowered with ``module_levels``
(e.g. ``{"clapsense.audio": "DEBUG"}``).
"""

import logging
from collections.abc import Mapping
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Shared console instance for rich output
console = Console()

_LOG_DIR = Path.home() / ".clapsense" / "logs"
_LOG_FILE_NAME = "clapsense.log"

# [TIME] [LEVEL] [MODULE] message
_FILE_FORMAT = "%(asctime)s [%(levelname)-8s] [%(name)-26s] %(message)s"
_FILE_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers kept at WARNING unless named in module_levels
_QUIET_LOGGERS = ("asyncio",)


def _parse_level(name: str, default: int = logging.INFO) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def _console_handler(level: int, verbose: bool) -> logging.Handler:
    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_path=verbose,
        show_level=True,
        show_time=True,
    )
    handler.setLevel(level)
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        filename=str(log_file),
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FMT))
    return handler


def setup_logging(
    verbose: bool = False,
    log_level: str = "INFO",
    log_dir: Path | None = None,
    module_levels: Mapping[str, str] | None = None,
) -> Path:
    """Route clapsense logs to the Rich console and a rotated log file.

    Args:
        verbose: If True, the console shows DEBUG regardless of *log_level*.
        log_level: Console level name (unknown names fall back to INFO).
        log_dir: Directory for the log file (defaults to ~/.clapsense/logs).
        module_levels: Per-logger level names, applied to both handlers.

    Returns:
        Path of the log file.
    """
    console_level = logging.DEBUG if verbose else _parse_level(log_level)
    log_dir = log_dir or _LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / _LOG_FILE_NAME

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    # Root passes everything; each handler filters for itself
    root.setLevel(logging.DEBUG)
    root.addHandler(_console_handler(console_level, verbose))
    root.addHandler(_file_handler(log_file))

    levels = {name: "WARNING" for name in _QUIET_LOGGERS}
    levels.update(module_levels or {})
    for name, level_name in levels.items():
        logging.getLogger(name).setLevel(_parse_level(level_name))

    logging.getLogger(__name__).debug(
        "Logging configured: console=%s, file=%s, overrides=%s",
        logging.getLevelName(console_level), log_file, dict(module_levels or {}),
    )
    return log_file
