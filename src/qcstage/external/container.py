"""Single synchronous container invocation: optional pull, then run."""
from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Sequence

from qcstage.domain.models import DEFAULT_TAG, ImageReference, InvocationSpec
from qcstage.errors import (
    ContainerTimeoutError,
    PullFailure,
    RunFailure,
    RuntimeNotFoundError,
)
from qcstage.infra.arg_policy import ArgumentPolicy

__all__ = ["ProcessOutcome", "run_process", "ContainerRunner"]

logger = logging.getLogger(__name__)

# grace period between terminate() and kill() on interrupt or timeout
_TERMINATE_GRACE_S = 5.0
# stderr lines repeated at ERROR when a command fails
_STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: int
    stdout: str = ""
    stderr: str = ""


def _drain(stream, level: int, sink: list[str]) -> None:
    for line in iter(stream.readline, ""):
        sink.append(line)
        logger.log(level, line.rstrip())
    stream.close()


def _stop(process: subprocess.Popen) -> None:
    process.terminate()
    try:
        process.wait(timeout=_TERMINATE_GRACE_S)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def run_process(argv: Sequence[str], timeout: float | None = None) -> ProcessOutcome:
    """
    Run ``argv`` without a shell and block until it exits.

    stdout lines are logged at INFO, stderr lines at DEBUG while the process
    runs. stdin is inherited so attached/interactive runs keep working.

    Raises:
    - RuntimeNotFoundError: the executable does not exist.
    - ContainerTimeoutError: ``timeout`` expired; the process was stopped
      (SIGTERM, then SIGKILL after a grace period).
    - KeyboardInterrupt: re-raised after the child has been stopped.
    """
    argv = list(argv)
    try:
        process = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as e:
        raise RuntimeNotFoundError(argv[0]) from e

    out_lines: list[str] = []
    err_lines: list[str] = []
    readers = [
        threading.Thread(target=_drain, args=(process.stdout, logging.INFO, out_lines), daemon=True),
        threading.Thread(target=_drain, args=(process.stderr, logging.DEBUG, err_lines), daemon=True),
    ]
    for t in readers:
        t.start()
    try:
        returncode = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        # SIGTERM first: docker run forwards it to the container, SIGKILL it cannot
        _stop(process)
        for t in readers:
            t.join(timeout=_TERMINATE_GRACE_S)
        logger.error(f"Command timed out after {timeout}s: {shlex.join(argv)}")
        raise ContainerTimeoutError(argv, timeout)
    except KeyboardInterrupt:
        logger.warning(f"Interrupted; stopping {argv[0]}")
        _stop(process)
        raise
    for t in readers:
        t.join()
    return ProcessOutcome(returncode, "".join(out_lines), "".join(err_lines))


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except ValueError:  # closed stdin
        return False


class ContainerRunner:
    """Pull (unless skipped) and run one image with the container runtime.

    The image name is fixed per runner; only the tag varies between calls.
    No retries: a non-zero exit is raised as ``PullFailure``/``RunFailure``.
    """

    def __init__(
        self,
        image_name: str,
        *,
        executable: str = "docker",
        timeout: float | None = None,
        tty: bool | str = "auto",
        policy: ArgumentPolicy | None = None,
        process_runner: Callable[..., ProcessOutcome] = run_process,
    ):
        # validates the name once, up front
        ImageReference(image_name)
        self.image_name = image_name
        self.executable = executable
        self.timeout = timeout
        self.tty = tty
        self.policy = policy or ArgumentPolicy()
        self._process_runner = process_runner

    def image(self, tag: str | None = DEFAULT_TAG) -> ImageReference:
        return ImageReference(self.image_name, tag or DEFAULT_TAG)

    def _attach_flags(self) -> list[str]:
        use_tty = _stdin_is_tty() if self.tty == "auto" else bool(self.tty)
        return ["-it"] if use_tty else ["-i"]

    def pull_command(self, image_ref: ImageReference) -> list[str]:
        return [self.executable, "pull", str(image_ref)]

    def run_command(self, image_ref: ImageReference, spec: InvocationSpec) -> list[str]:
        mount_args = self.policy.check_mount_args(spec.mount_args)
        command_args = self.policy.check_command_args(spec.command_args)
        return [
            self.executable,
            "run",
            *self._attach_flags(),
            *mount_args,
            str(image_ref),
            *command_args,
        ]

    def _execute(self, argv: list[str], failure) -> int:
        logger.debug(f"Executing command: {shlex.join(argv)}")
        outcome = self._process_runner(argv, timeout=self.timeout)
        if outcome.returncode != 0:
            logger.error(f"Command exited with status {outcome.returncode}: {shlex.join(argv)}")
            for line in outcome.stderr.strip().splitlines()[-_STDERR_TAIL_LINES:]:
                logger.error(f"  {line}")
            raise failure(outcome.returncode, argv, output=outcome.stdout, stderr=outcome.stderr)
        return outcome.returncode

    def pull(self, image_ref: ImageReference) -> int:
        return self._execute(self.pull_command(image_ref), PullFailure)

    def run(self, image_ref: ImageReference, spec: InvocationSpec) -> int:
        """Pull ``image_ref`` unless ``spec.skip_pull``, then run it attached.

        Returns the exit status (always 0; failures raise).
        """
        # build (and validate) the run command before touching the network
        argv = self.run_command(image_ref, spec)
        if spec.skip_pull:
            logger.info(f"Skipping pull of {image_ref}")
        else:
            logger.info(f"Pulling {image_ref}")
            self.pull(image_ref)
        logger.info(f"Running {image_ref}")
        return self._execute(argv, RunFailure)
