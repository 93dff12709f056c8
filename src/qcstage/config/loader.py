# src/qcstage/config/loader.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from pathlib import Path
import typing as t

try:
    import tomllib  # py>=3.11
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from qcstage.errors import ConfigError

CONFIG_FILENAME = "qcstage.toml"

# -----------------
# Dataclass schema
# -----------------

@dataclass
class ImageSection:
    name: str = "qcstage/nwchem-yaml"
    tag: str = "latest"
    # skip the pull step, e.g. for locally built images
    skip_pull: bool = False

@dataclass
class RuntimeSection:
    executable: str = "docker"
    timeout: float | None = None
    tty: bool | str = "auto"
    strict_args: bool = False

@dataclass
class StagingSection:
    base_dir: str | None = None
    prefix: str = "qcstage-"
    mount_target: str = "/opt/data"
    output_extension: str = ".yaml"

@dataclass
class Config:
    project_root: Path
    image: ImageSection = field(default_factory=ImageSection)
    runtime: RuntimeSection = field(default_factory=RuntimeSection)
    staging: StagingSection = field(default_factory=StagingSection)
    sources: list[Path] = field(default_factory=list)

# -----------------
# Helpers
# -----------------

def _load_toml(path: Path) -> dict:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out

def _merge_into_dataclass(section, payload: dict):
    """Recursively merge a dict into a (possibly nested) dataclass instance."""
    for k, v in payload.items():
        if not hasattr(section, k):
            continue
        current = getattr(section, k)
        if is_dataclass(current) and isinstance(v, dict):
            _merge_into_dataclass(current, v)
        else:
            if v is not None:
                setattr(section, k, v)

def _validate(cfg: Config) -> None:
    if not isinstance(cfg.image.name, str) or not cfg.image.name.strip():
        raise ConfigError("[image].name must be a non-empty string")
    if not isinstance(cfg.image.skip_pull, bool):
        raise ConfigError("[image].skip_pull must be a boolean")
    timeout = cfg.runtime.timeout
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError("[runtime].timeout must be a positive number of seconds")
        cfg.runtime.timeout = float(timeout)
    if cfg.runtime.tty not in (True, False, "auto"):
        raise ConfigError("[runtime].tty must be true, false or \"auto\"")
    ext = cfg.staging.output_extension
    if not isinstance(ext, str) or not ext.startswith(".") or len(ext) < 2:
        raise ConfigError("[staging].output_extension must look like '.yaml'")
    if not isinstance(cfg.staging.prefix, str):
        raise ConfigError("[staging].prefix must be a string")
    if cfg.staging.base_dir is not None and not isinstance(cfg.staging.base_dir, str):
        raise ConfigError("[staging].base_dir must be a path string")
    if not isinstance(cfg.runtime.executable, str) or not cfg.runtime.executable:
        raise ConfigError("[runtime].executable must be a non-empty string")
    if not isinstance(cfg.image.tag, str):
        raise ConfigError("[image].tag must be a string")
    if not isinstance(cfg.runtime.strict_args, bool):
        raise ConfigError("[runtime].strict_args must be a boolean")
    mount = cfg.staging.mount_target
    if not isinstance(mount, str) or not mount.startswith("/"):
        raise ConfigError("[staging].mount_target must be an absolute container path")

# -----------------
# Loader
# -----------------

def load_config(
    project_root: t.Union[str, Path, None] = None,
    config_path: t.Union[str, Path, None] = None,
) -> Config:
    root = Path(project_root or Path.cwd()).resolve()
    data: dict = {}

    tomls: list[Path] = []

    # 1) project-level defaults
    project_toml = root / CONFIG_FILENAME
    if project_toml.is_file():
        tomls.append(project_toml)

    # 2) explicit --config (highest precedence)
    if config_path:
        provided = Path(config_path).resolve()
        if not provided.is_file():
            raise ConfigError(f"Config file not found: {provided}")
        if provided not in tomls:
            tomls.append(provided)

    for p in tomls:
        data = _deep_merge(data, _load_toml(p))

    cfg = Config(project_root=root, sources=tomls)
    for section_name in ("image", "runtime", "staging"):
        payload = data.get(section_name, {})
        if not isinstance(payload, dict):
            raise ConfigError(f"[{section_name}] must be a table")
        _merge_into_dataclass(getattr(cfg, section_name), payload)

    _validate(cfg)
    return cfg


def dump_config(cfg: Config) -> dict:
    """Plain dict view of the effective configuration (for logging)."""
    return {
        "image": asdict(cfg.image),
        "runtime": asdict(cfg.runtime),
        "staging": asdict(cfg.staging),
    }
