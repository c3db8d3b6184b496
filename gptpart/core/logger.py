"""Logging for gptpart: rich output on stderr, optional log file."""
import logging
import tempfile
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# stdout carries command output (e.g. `gptpart dump`), so logs go to stderr
console = Console(stderr=True)

PACKAGE_LOGGER = "gptpart"

_file_handler: Optional[logging.FileHandler] = None


def _level(verbose: bool) -> int:
    return logging.DEBUG if verbose else logging.INFO


def setup_file_logging(log_file: str, verbose: bool = False) -> Path:
    """Also write gptpart logs to ``log_file``.

    Falls back to a file in the temp directory when ``log_file`` can't be
    opened. Only the first call installs a handler.

    Returns:
        Path of the file actually being written
    """
    global _file_handler

    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    target = Path(log_file)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(target)
    except OSError:
        target = Path(tempfile.gettempdir()) / "gptpart.log"
        handler = logging.FileHandler(target)

    handler.setLevel(_level(verbose))
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logging.getLogger(PACKAGE_LOGGER).addHandler(handler)
    _file_handler = handler

    logging.getLogger(PACKAGE_LOGGER).info(f"gptpart logging initialized: {target}")
    return target


def set_verbose(verbose: bool) -> None:
    """Switch gptpart logging between INFO and DEBUG."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(_level(verbose))
    if _file_handler is not None:
        _file_handler.setLevel(_level(verbose))


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` (typically __name__).

    Records propagate to the package logger, which carries the Rich handler.
    """
    package = logging.getLogger(PACKAGE_LOGGER)
    if not any(isinstance(h, RichHandler) for h in package.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package.addHandler(handler)
        package.setLevel(logging.INFO)

    return logging.getLogger(name)
