"""Host platform capability used to build container mount paths.

Container mount syntax wants forward slashes. On hosts whose native
separator is a backslash the canonical path has to be rewritten before it is
embedded in ``-v <host>:<target>``. The platform is injected so either host
can be simulated deterministically in tests.
"""
from __future__ import annotations

import ntpath
import os
import posixpath
from typing import Protocol

__all__ = [
    "HostPlatform",
    "PosixPlatform",
    "WindowsPlatform",
    "detect_platform",
    "mount_path_for",
]


class HostPlatform(Protocol):
    name: str
    sep: str

    def canonical(self, path: str) -> str:
        """Return the canonical absolute form of ``path``."""
        ...


class PosixPlatform:
    name = "posix"
    sep = "/"

    def canonical(self, path: str) -> str:
        return posixpath.realpath(os.fspath(path))


class WindowsPlatform:
    name = "windows"
    sep = "\\"

    def canonical(self, path: str) -> str:
        path = os.fspath(path)
        if os.name == "nt":
            return ntpath.realpath(path)
        # ntpath.realpath falls back to abspath() off Windows, which would
        # join drive-letter paths onto the POSIX cwd
        return ntpath.normpath(path)


def detect_platform() -> HostPlatform:
    if os.sep == "\\":
        return WindowsPlatform()
    return PosixPlatform()


def mount_path_for(path, platform: HostPlatform | None = None) -> str:
    """Host path of ``path`` in the form accepted as a bind-mount source."""
    platform = platform or detect_platform()
    resolved = platform.canonical(os.fspath(path))
    if platform.sep == "\\":
        return resolved.replace("\\", "/")
    return resolved
