"""run_process against real child processes (no container runtime needed)."""
import logging
import sys
import time

import pytest

from qcstage.errors import ContainerTimeoutError, RuntimeNotFoundError
from qcstage.external.container import run_process


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_captures_and_logs_both_streams(caplog):
    caplog.set_level(logging.DEBUG, logger="qcstage")
    outcome = run_process(_py("import sys; print('hello'); print('oops', file=sys.stderr)"))
    assert outcome.returncode == 0
    assert outcome.stdout == "hello\n"
    assert outcome.stderr == "oops\n"
    by_msg = {r.getMessage(): r.levelno for r in caplog.records}
    assert by_msg.get("hello") == logging.INFO
    assert by_msg.get("oops") == logging.DEBUG


def test_non_zero_exit_is_returned_not_raised():
    assert run_process(_py("import sys; sys.exit(7)")).returncode == 7


def test_arguments_are_not_shell_interpreted():
    outcome = run_process(_py("import sys; print(sys.argv[1])") + ["$(echo injected); ls"])
    assert outcome.stdout.strip() == "$(echo injected); ls"


def test_large_stderr_does_not_deadlock():
    code = "import sys; sys.stderr.write('x' * 500000); print('done')"
    outcome = run_process(_py(code), timeout=30)
    assert outcome.returncode == 0
    assert outcome.stdout == "done\n"
    assert len(outcome.stderr) == 500000


def test_timeout_kills_the_process():
    start = time.monotonic()
    with pytest.raises(ContainerTimeoutError) as exc:
        run_process(_py("import time; time.sleep(30)"), timeout=0.5)
    assert time.monotonic() - start < 15
    assert exc.value.timeout == 0.5


def test_missing_executable():
    with pytest.raises(RuntimeNotFoundError) as exc:
        run_process(["qcstage-definitely-not-a-runtime", "pull", "x"])
    assert exc.value.executable == "qcstage-definitely-not-a-runtime"


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX signals")
def test_timeout_sends_sigterm_before_kill(tmp_path):
    marker = tmp_path / "terminated"
    ready = tmp_path / "ready"
    code = (
        "import pathlib, signal, sys, time\n"
        f"marker = pathlib.Path({str(marker)!r})\n"
        "def _term(signum, frame):\n"
        "    marker.write_text('SIGTERM')\n"
        "    sys.exit(0)\n"
        "signal.signal(signal.SIGTERM, _term)\n"
        f"pathlib.Path({str(ready)!r}).write_text('1')\n"
        "time.sleep(30)\n"
    )
    with pytest.raises(ContainerTimeoutError):
        run_process(_py(code), timeout=2.0)
    assert ready.exists(), "child never started"
    assert marker.read_text() == "SIGTERM"
