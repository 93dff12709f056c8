"""Convert one local input file through the containerised tool.

Flow per conversion::

    Created -> Staged -> Invoked -> {Collected | MissingOutput} -> CleanedUp

The staging directory is removed on every exit path, including exceptions
raised while copying or while the container runs.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from qcstage.core.staging import StagingDirectory
from qcstage.domain.models import (
    ConversionRequest,
    ConversionResult,
    ConversionState,
    InvocationSpec,
)
from qcstage.errors import VOLUME_SHARING_HINT, InputNotFoundError
from qcstage.external.container import ContainerRunner
from qcstage.infra.platform import HostPlatform, detect_platform, mount_path_for

__all__ = [
    "DEFAULT_OUTPUT_EXTENSION",
    "DEFAULT_MOUNT_TARGET",
    "resolve_destination",
    "output_name",
    "ConversionOrchestrator",
]

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_EXTENSION = ".yaml"
DEFAULT_MOUNT_TARGET = "/opt/data"


def resolve_destination(input_path, destination=None, extension: str = DEFAULT_OUTPUT_EXTENSION) -> str:
    """Explicit destination verbatim, else the input path with ``extension``."""
    if destination:
        return os.fspath(destination)
    return str(Path(input_path).with_suffix(extension))


def output_name(input_path, extension: str = DEFAULT_OUTPUT_EXTENSION) -> str:
    """Base name of the artifact the tool writes for ``input_path``."""
    return Path(input_path).with_suffix(extension).name


class ConversionOrchestrator:
    def __init__(
        self,
        runner: ContainerRunner,
        *,
        platform: HostPlatform | None = None,
        staging_root: str | os.PathLike | None = None,
        staging_prefix: str = "qcstage-",
        mount_target: str = DEFAULT_MOUNT_TARGET,
        output_extension: str = DEFAULT_OUTPUT_EXTENSION,
    ):
        self.runner = runner
        self.platform = platform or detect_platform()
        self.staging_root = staging_root
        self.staging_prefix = staging_prefix
        self.mount_target = mount_target
        self.output_extension = output_extension

    def build_invocation(self, staging_path, input_name: str, skip_pull: bool = False) -> InvocationSpec:
        host = mount_path_for(staging_path, self.platform)
        return InvocationSpec(
            mount_args=("-v", f"{host}:{self.mount_target}"),
            command_args=(input_name,),
            skip_pull=skip_pull,
        )

    def convert(self, request: ConversionRequest) -> ConversionResult:
        """
        Run one conversion.

        Returns a COLLECTED result when the artifact was copied to the
        destination, MISSING_OUTPUT when the tool exited cleanly without
        writing it. Everything else (missing input, runtime failures,
        copy errors, timeouts, interrupts) propagates after cleanup.
        """
        src = Path(request.input_path)
        if not src.is_file():
            raise InputNotFoundError(src)

        # resolved before anything runs so a failure never leaves a guessed path
        destination = resolve_destination(src, request.destination_path, self.output_extension)
        artifact = output_name(src, self.output_extension)
        image_ref = self.runner.image(request.tag)

        history: list[ConversionState] = []
        with StagingDirectory(self.staging_root, self.staging_prefix) as staging:
            history.append(ConversionState.CREATED)
            staging.stage_file(src)
            history.append(ConversionState.STAGED)

            spec = self.build_invocation(staging.path, src.name, request.skip_pull)
            self.runner.run(image_ref, spec)
            history.append(ConversionState.INVOKED)

            if (staging.path / artifact).is_file():
                staging.collect(artifact, destination)
                state, reason = ConversionState.COLLECTED, None
                logger.info(f"Conversion finished: {destination}")
            else:
                state = ConversionState.MISSING_OUTPUT
                reason = f"tool produced no output artifact '{artifact}'"
                logger.error(
                    f"Expected file '{artifact}' was not created "
                    f"(staging contents: {', '.join(staging.contents()) or '<empty>'})."
                )
                logger.error(VOLUME_SHARING_HINT)
            history.append(state)

        if staging.removed:
            history.append(ConversionState.CLEANED_UP)
        return ConversionResult(
            state=state,
            destination=destination,
            artifact_name=artifact,
            staging_dir=str(staging.path),
            reason=reason,
            history=history,
        )
