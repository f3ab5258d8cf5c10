"""
Logging utilities for scan cleanup.

Sets up console (rich or plain) and file logging, and provides a context
manager that reports batch statistics.
"""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional, Union, Generator

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)


class CleanupFormatter(logging.Formatter):
    """Plain-text formatter used when rich output is disabled and for log files."""

    def __init__(self, include_module: bool = True, include_function: bool = False):
        format_parts = ["%(asctime)s"]
        if include_module:
            format_parts.append("%(name)s")
        format_parts.append("%(levelname)s")
        if include_function:
            format_parts.append("%(funcName)s")
        format_parts.append("%(message)s")
        super().__init__(" - ".join(format_parts), datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    use_rich: bool = True,
    format_style: str = "detailed"
) -> logging.Logger:
    """
    Set up logging for scan cleanup.

    Args:
        level: Logging level
        log_file: Optional log file path
        use_rich: Whether to use rich console output
        format_style: Format style ('simple', 'detailed', 'minimal')

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if isinstance(level, str):
        level = getattr(logging, level.upper())
    root_logger.setLevel(level)

    if use_rich:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=format_style == "detailed",
            markup=False,
            rich_tracebacks=True
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)

        if format_style == "minimal":
            formatter = CleanupFormatter(include_module=False, include_function=False)
        elif format_style == "simple":
            formatter = CleanupFormatter(include_module=True, include_function=False)
        else:
            formatter = CleanupFormatter(include_module=True, include_function=True)

        console_handler.setFormatter(formatter)

    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setFormatter(CleanupFormatter(include_module=True, include_function=True))
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)
        # The file gets everything; the console handler keeps its own level
        root_logger.setLevel(min(level, logging.DEBUG))

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


@contextmanager
def log_processing_stats(
    operation: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO
) -> Generator[Dict[str, Any], None, None]:
    """
    Context manager for logging batch statistics.

    Args:
        operation: Description of the operation
        logger: Logger instance (uses root if None)
        level: Logging level for the stats

    Yields:
        Dictionary the caller updates with ``files_processed``,
        ``files_failed`` and ``files_cancelled``
    """
    if logger is None:
        logger = logging.getLogger()

    stats = {
        "operation": operation,
        "start_time": time.time(),
        "files_processed": 0,
        "files_failed": 0,
        "files_cancelled": 0,
    }

    logger.log(level, f"Starting {operation}")

    try:
        yield stats
    except Exception as e:
        duration = time.time() - stats["start_time"]
        logger.error(f"Failed {operation} after {duration:.2f}s: {e}")
        raise

    duration = time.time() - stats["start_time"]
    stats["duration"] = duration
    attempted = stats["files_processed"] + stats["files_failed"]
    stats["success_rate"] = stats["files_processed"] / attempted if attempted > 0 else 0

    logger.log(level,
               f"Completed {operation}: "
               f"processed={stats['files_processed']}, "
               f"failed={stats['files_failed']}, "
               f"cancelled={stats['files_cancelled']}, "
               f"duration={duration:.2f}s, "
               f"success_rate={stats['success_rate']*100:.1f}%")
