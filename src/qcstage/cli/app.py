# src/qcstage/cli/app.py
import argparse
import logging
import shlex
import sys

from qcstage.config import dump_config, load_config
from qcstage.core.convert import ConversionOrchestrator
from qcstage.domain.models import ConversionRequest, InvocationSpec
from qcstage.errors import (
    ConfigError,
    QcstageError,
    VOLUME_SHARING_HINT,
)
from qcstage.external.container import ContainerRunner
from qcstage.infra.arg_policy import ArgumentPolicy
from qcstage.infra.logging import log_run_header, setup_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

DESCRIPTIONS = {
    "run-image": "Pull (unless --skip-pull) and run the converter image with raw runtime and command arguments.",
    "convert": "Stage an input file, run the converter image on it and copy the resulting .yaml to the destination.",
}


def _split_all(values: list[str] | None) -> list[str]:
    # each occurrence is one shell-style string: --docker-args "-v /a:/b"
    out: list[str] = []
    for v in values or []:
        lex = shlex.shlex(v, posix=True)
        lex.whitespace_split = True
        lex.commenters = ""
        # backslashes are path separators on Windows hosts, not escapes
        lex.escape = ""
        out.extend(lex)
    return out


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}")
    if not seconds > 0:
        raise argparse.ArgumentTypeError(f"timeout must be positive, got {value}")
    return seconds


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("qcstage")
    p.add_argument("--config", help="Path to a TOML config (overrides ./qcstage.toml)")
    p.add_argument("--project", default=None, help="Directory searched for qcstage.toml (default: CWD)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level, including the full runtime command lines")
    p.add_argument("--log-file", help="Also append log output to this file")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_cmd(name: str):
        sp = sub.add_parser(name, help=DESCRIPTIONS[name], description=DESCRIPTIONS[name])
        sp.add_argument("--skip-pull", action="store_true", default=None, help="Do not pull the image first (use a local build)")
        sp.add_argument("--tag", default=None, help="Image tag (default from config, else 'latest')")
        sp.add_argument("--timeout", type=_positive_seconds, default=None, help="Stop the container run after this many seconds (SIGTERM, then SIGKILL)")
        return sp

    sp = add_cmd("run-image")
    sp.add_argument("--docker-args", action="append", metavar="ARGS",
                    help="Runtime arguments placed before the image (repeatable, shell-split)")
    sp.add_argument("--command-args", action="append", metavar="ARGS",
                    help="Arguments passed to the image entrypoint (repeatable, shell-split)")

    sp = add_cmd("convert")
    sp.add_argument("--input", required=True, help="Quantum-chemistry input file")
    sp.add_argument("--destination", default=None, help="Output path (default: input path with .yaml extension)")
    return p


def _make_runner(cfg, timeout: float | None) -> ContainerRunner:
    return ContainerRunner(
        cfg.image.name,
        executable=cfg.runtime.executable,
        timeout=timeout if timeout is not None else cfg.runtime.timeout,
        tty=cfg.runtime.tty,
        policy=ArgumentPolicy(strict=cfg.runtime.strict_args),
    )


def _cmd_run_image(args, cfg) -> int:
    runner = _make_runner(cfg, args.timeout)
    spec = InvocationSpec(
        mount_args=_split_all(args.docker_args),
        command_args=_split_all(args.command_args),
        skip_pull=args.skip_pull,
    )
    runner.run(runner.image(args.tag), spec)
    return EXIT_OK


def _cmd_convert(args, cfg) -> int:
    orchestrator = ConversionOrchestrator(
        _make_runner(cfg, args.timeout),
        staging_root=cfg.staging.base_dir,
        staging_prefix=cfg.staging.prefix,
        mount_target=cfg.staging.mount_target,
        output_extension=cfg.staging.output_extension,
    )
    request = ConversionRequest(
        input_path=args.input,
        destination_path=args.destination,
        tag=args.tag,
        skip_pull=args.skip_pull,
    )
    result = orchestrator.convert(request)
    if not result.ok:
        print(f"[qcstage][error] {result.reason}.", file=sys.stderr)
        print(f"[qcstage][hint] {VOLUME_SHARING_HINT}", file=sys.stderr)
        return EXIT_FAILURE
    print(result.destination)
    return EXIT_OK


COMMANDS = {
    "run-image": _cmd_run_image,
    "convert": _cmd_convert,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_file, verbose=args.verbose)

    try:
        cfg = load_config(args.project, args.config)
    except ConfigError as e:
        logging.error(str(e))
        return EXIT_USAGE
    # CLI flags win over config values
    if args.tag is None:
        args.tag = cfg.image.tag
    if args.skip_pull is None:
        args.skip_pull = cfg.image.skip_pull

    log_run_header(args.cmd)
    logging.debug(f"Effective config: {dump_config(cfg)}"
                  + (f" | sources={', '.join(map(str, cfg.sources))}" if cfg.sources else " | sources=<defaults>"))

    try:
        return COMMANDS[args.cmd](args, cfg)
    except KeyboardInterrupt:
        logging.warning("Interrupted.")
        return EXIT_INTERRUPTED
    except QcstageError as e:
        logging.error(str(e))
        return EXIT_FAILURE
    except OSError as e:
        logging.error(f"I/O error: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
