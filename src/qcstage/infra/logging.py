"""Logging setup shared by the CLI and library callers."""
from __future__ import annotations

import logging
import os
from logging.handlers import WatchedFileHandler
from pathlib import Path

from qcstage import __version__ as _qcstage_version

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _desired_level(verbose: bool) -> int:
    if verbose:
        return logging.DEBUG
    env_level = os.getenv("QCSTAGE_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(env_level)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_path=None, also_console: bool = True, verbose: bool = False) -> None:
    """
    Configure the root logger.

    Idempotent: an existing console handler or a FileHandler for the same
    ``log_path`` is reused rather than duplicated. The level comes from
    ``QCSTAGE_LOG_LEVEL`` (default INFO) unless ``verbose`` forces DEBUG.
    """
    root = logging.getLogger()
    level = _desired_level(verbose)
    root.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT)

    # handlers stay at NOTSET so the root level alone decides what is emitted
    if also_console and not any(type(h) is logging.StreamHandler for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        root.addHandler(ch)

    if log_path is None:
        return
    path = Path(log_path).resolve()
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == path:
            return
    path.parent.mkdir(parents=True, exist_ok=True)
    fh = WatchedFileHandler(path, mode="a", encoding="utf-8", delay=False)
    fh.setFormatter(fmt)
    root.addHandler(fh)
    root.info(f"Logging initialized. Log file: {path} (level={logging.getLevelName(level)})")


def log_run_header(command: str) -> str:
    header = f"qcstage {_qcstage_version} | cmd={command}"
    logging.getLogger().info(header)
    return header


def reset_logging():
    """Remove and close every handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
