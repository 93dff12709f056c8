"""Exclusive temporary directory used to exchange files with the container."""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from qcstage.errors import StagingIOError

__all__ = ["StagingDirectory"]

logger = logging.getLogger(__name__)


class StagingDirectory:
    """
    A freshly created, randomly named directory owned by one conversion.

    Use as a context manager; the directory and its contents are removed on
    exit whatever happened inside the block. ``cleanup()`` is idempotent and
    only ever removes the directory this instance created.
    """

    def __init__(self, base_dir: str | os.PathLike | None = None, prefix: str = "qcstage-"):
        if base_dir is not None:
            Path(base_dir).mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
        self._removed = False
        logger.info(f"Created staging directory: {self.path}")

    def __enter__(self) -> "StagingDirectory":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def __fspath__(self) -> str:
        return str(self.path)

    @property
    def removed(self) -> bool:
        return self._removed

    def stage_file(self, src: str | os.PathLike) -> Path:
        """Copy a single file into the directory, keeping its base name."""
        src = Path(src)
        dst = self.path / src.name
        try:
            shutil.copy2(src, dst)
        except OSError as e:
            raise StagingIOError(f"Failed to copy '{src}' into staging directory: {e}") from e
        logger.info(f"Copied file '{src.name}' to staging directory.")
        return dst

    def collect(self, name: str, destination: str | os.PathLike) -> Path:
        """Copy ``name`` from the directory to ``destination``."""
        src = self.path / name
        dst = Path(destination)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
        except OSError as e:
            raise StagingIOError(f"Failed to copy '{name}' to '{dst}': {e}") from e
        logger.info(f"Copied file '{name}' to '{dst}'.")
        return dst

    def contents(self) -> list[str]:
        try:
            return sorted(os.listdir(self.path))
        except OSError:
            return []

    def cleanup(self) -> bool:
        """
        Remove the directory tree. Safe to call more than once.

        Returns True if the directory is gone afterwards. Failures are logged,
        not raised, so they never hide an error already in flight.
        """
        if self._removed:
            return True
        if not self.path.exists():
            self._removed = True
            return True
        try:
            shutil.rmtree(self.path)
        except OSError as e:
            logger.error(f"Failed to remove staging directory '{self.path}': {e}")
            return False
        self._removed = True
        logger.info(f"Removed staging directory: {self.path}")
        return True
