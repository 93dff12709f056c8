"""Value objects passed between the CLI, the orchestrator and the runner."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field

from qcstage.errors import MissingOutputArtifactError

__all__ = [
    "DEFAULT_TAG",
    "ImageReference",
    "InvocationSpec",
    "ConversionRequest",
    "ConversionState",
    "ConversionResult",
]

DEFAULT_TAG = "latest"


@dataclass(frozen=True)
class ImageReference:
    name: str
    tag: str = DEFAULT_TAG

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("image name must be a non-empty string")
        if not self.tag:
            # empty tag on the command line means "use the default"
            object.__setattr__(self, "tag", DEFAULT_TAG)

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


@dataclass(frozen=True)
class InvocationSpec:
    """Arguments for a single ``run``.

    ``mount_args`` go before the image reference, ``command_args`` after it.
    Both are opaque tokens passed through unchanged.
    """
    mount_args: tuple[str, ...] = ()
    command_args: tuple[str, ...] = ()
    skip_pull: bool = False

    def __post_init__(self):
        object.__setattr__(self, "mount_args", tuple(self.mount_args))
        object.__setattr__(self, "command_args", tuple(self.command_args))


@dataclass(frozen=True)
class ConversionRequest:
    input_path: str
    destination_path: str | None = None
    tag: str = DEFAULT_TAG
    skip_pull: bool = False


class ConversionState(str, enum.Enum):
    CREATED = "created"
    STAGED = "staged"
    INVOKED = "invoked"
    COLLECTED = "collected"
    MISSING_OUTPUT = "missing_output"
    CLEANED_UP = "cleaned_up"


@dataclass
class ConversionResult:
    """Outcome of one conversion.

    ``state`` is the terminal state (COLLECTED or MISSING_OUTPUT); ``history``
    lists every state the conversion went through, ending in CLEANED_UP when
    the staging directory was removed.
    """
    state: ConversionState
    destination: str
    artifact_name: str
    staging_dir: str | None = None
    reason: str | None = None
    history: list[ConversionState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is ConversionState.COLLECTED

    @property
    def cleaned_up(self) -> bool:
        return bool(self.history) and self.history[-1] is ConversionState.CLEANED_UP

    def raise_for_status(self) -> None:
        if self.state is ConversionState.MISSING_OUTPUT:
            raise MissingOutputArtifactError(self.artifact_name, self.staging_dir)
