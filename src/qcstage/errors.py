"""Exception hierarchy shared by the runner, the orchestrator and the CLI."""
from __future__ import annotations

import subprocess

__all__ = [
    "QcstageError",
    "ConfigError",
    "InputNotFoundError",
    "ArgumentPolicyError",
    "RuntimeNotFoundError",
    "ContainerExecutionError",
    "PullFailure",
    "RunFailure",
    "ContainerTimeoutError",
    "StagingIOError",
    "MissingOutputArtifactError",
    "VOLUME_SHARING_HINT",
]

VOLUME_SHARING_HINT = (
    "The container finished but left no output in the staging directory. "
    "If the container runtime runs in a VM (Docker Desktop, colima, WSL2), "
    "check that the temporary directory is shared with it "
    "(e.g. Docker Desktop > Settings > Resources > File sharing)."
)


class QcstageError(Exception):
    """Base class for all errors raised by qcstage."""


class ConfigError(QcstageError):
    pass


class InputNotFoundError(QcstageError, FileNotFoundError):
    """The conversion input does not exist or is not a regular file."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Input file not found: {self.path}")

    def __str__(self) -> str:
        return f"Input file not found: {self.path}"


class ArgumentPolicyError(QcstageError, ValueError):
    def __init__(self, token, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"Rejected argument {token!r}: {reason}")


class RuntimeNotFoundError(QcstageError):
    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(f"Container runtime '{executable}' was not found on PATH")


class ContainerExecutionError(QcstageError, subprocess.CalledProcessError):
    """The container runtime exited with a non-zero status.

    Also a ``CalledProcessError`` so callers that already handle failed
    subprocesses keep working.
    """

    action = "command"

    def __init__(self, returncode: int, cmd, output=None, stderr=None):
        subprocess.CalledProcessError.__init__(self, returncode, cmd, output=output, stderr=stderr)

    def __str__(self) -> str:
        msg = f"Container {self.action} failed with exit status {self.returncode}"
        detail = (self.stderr or "").strip().splitlines()
        if detail:
            msg += f": {detail[-1]}"
        return msg


class PullFailure(ContainerExecutionError):
    action = "pull"


class RunFailure(ContainerExecutionError):
    action = "run"


class ContainerTimeoutError(QcstageError):
    def __init__(self, cmd, timeout: float):
        self.cmd = list(cmd)
        self.timeout = timeout
        super().__init__(f"Container command timed out after {timeout:g}s")


class StagingIOError(QcstageError, OSError):
    """Copying into or out of the staging directory failed."""

    def __init__(self, message: str):
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0] if self.args else "staging I/O error"


class MissingOutputArtifactError(QcstageError):
    def __init__(self, artifact_name: str, staging_dir: str | None = None):
        self.artifact_name = artifact_name
        self.staging_dir = staging_dir
        super().__init__(
            f"Tool produced no output artifact '{artifact_name}'. {VOLUME_SHARING_HINT}"
        )
