"""Validation of the opaque argument tokens handed to the container runtime.

Tokens are never interpreted by a shell, so the permissive default only
rejects what cannot be passed as an argv element at all. Strict mode
allow-lists the runtime options accepted before the image reference.
"""
from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass
from typing import Iterable

from qcstage.errors import ArgumentPolicyError

__all__ = ["ArgumentPolicy", "ALLOWED_RUNTIME_OPTIONS"]

# option -> whether it consumes the following token as its value
ALLOWED_RUNTIME_OPTIONS: dict[str, bool] = {
    "-v": True,
    "--volume": True,
    "--mount": True,
    "-e": True,
    "--env": True,
    "-w": True,
    "--workdir": True,
    "-u": True,
    "--user": True,
    "--network": True,
    "--cpus": True,
    "--memory": True,
    "--platform": True,
    "--rm": False,
}

_VOLUME_OPTIONS = ("-v", "--volume")


def _is_absolute_host_path(source: str) -> bool:
    # "C:/data" or "C:\data" from a Windows host, or a POSIX absolute path
    if len(source) >= 3 and source[1] == ":" and source[2] in "/\\":
        return source[0].isalpha()
    return posixpath.isabs(source)


def _split_volume(value: str) -> tuple[str, str]:
    # keep the drive letter colon of Windows sources attached to the source
    offset = 2 if len(value) >= 2 and value[1] == ":" and value[0].isalpha() else 0
    source, sep, rest = value[offset:].partition(":")
    if not sep or not rest:
        raise ArgumentPolicyError(value, "volume must be '<host path>:<container path>[:opts]'")
    return value[:offset] + source, rest


@dataclass(frozen=True)
class ArgumentPolicy:
    strict: bool = False

    def check_tokens(self, tokens: Iterable[str]) -> tuple[str, ...]:
        checked = []
        for tok in tokens:
            if not isinstance(tok, (str, os.PathLike)):
                raise ArgumentPolicyError(tok, "arguments must be strings")
            tok = os.fspath(tok)
            if "\x00" in tok:
                raise ArgumentPolicyError(tok, "NUL byte in argument")
            checked.append(tok)
        return tuple(checked)

    def check_mount_args(self, tokens: Iterable[str]) -> tuple[str, ...]:
        tokens = self.check_tokens(tokens)
        if not self.strict:
            return tokens
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            opt, eq, inline = tok.partition("=")
            if not opt.startswith("-"):
                raise ArgumentPolicyError(tok, "expected a runtime option before the image")
            if opt not in ALLOWED_RUNTIME_OPTIONS:
                raise ArgumentPolicyError(tok, "runtime option is not allow-listed")
            takes_value = ALLOWED_RUNTIME_OPTIONS[opt]
            if takes_value and not eq:
                if i + 1 >= len(tokens):
                    raise ArgumentPolicyError(tok, "option requires a value")
                inline = tokens[i + 1]
                i += 1
            elif not takes_value and eq:
                raise ArgumentPolicyError(tok, "option does not take a value")
            if opt in _VOLUME_OPTIONS:
                source, _ = _split_volume(inline)
                if not _is_absolute_host_path(source):
                    raise ArgumentPolicyError(inline, "volume source must be an absolute host path")
            i += 1
        return tokens

    def check_command_args(self, tokens: Iterable[str]) -> tuple[str, ...]:
        return self.check_tokens(tokens)
