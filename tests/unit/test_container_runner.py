import logging

import pytest

from qcstage.domain.models import ImageReference, InvocationSpec
from qcstage.errors import ArgumentPolicyError, PullFailure, RunFailure
from qcstage.external.container import ContainerRunner
from qcstage.infra.arg_policy import ArgumentPolicy
from tests.helpers.fakes import FakeProcessRunner


def _runner(fake, **kw):
    kw.setdefault("tty", False)
    return ContainerRunner("org/tool", process_runner=fake, **kw)


def test_pull_then_run_in_order():
    fake = FakeProcessRunner()
    runner = _runner(fake)
    spec = InvocationSpec(mount_args=["-v", "/stage:/opt/data"], command_args=["mol.nw"])
    assert runner.run(runner.image(), spec) == 0
    assert fake.calls == [
        ["docker", "pull", "org/tool:latest"],
        ["docker", "run", "-i", "-v", "/stage:/opt/data", "org/tool:latest", "mol.nw"],
    ]


def test_skip_pull_runs_directly_with_tag():
    fake = FakeProcessRunner()
    runner = _runner(fake)
    runner.run(runner.image("1.4.2"), InvocationSpec(command_args=["a.nw"], skip_pull=True))
    assert fake.actions == ["run"]
    assert "org/tool:1.4.2" in fake.calls[0]


def test_mount_args_before_image_command_args_after():
    fake = FakeProcessRunner()
    runner = _runner(fake)
    spec = InvocationSpec(mount_args=["-v", "/x:/y", "-e", "A=1"], command_args=["--flag", "in.nw"], skip_pull=True)
    runner.run(runner.image(), spec)
    argv = fake.calls[0]
    image_at = argv.index("org/tool:latest")
    assert argv[image_at - 4:image_at] == ["-v", "/x:/y", "-e", "A=1"]
    assert argv[image_at + 1:] == ["--flag", "in.nw"]


def test_tty_flag_when_forced():
    fake = FakeProcessRunner()
    runner = _runner(fake, tty=True)
    runner.run(runner.image(), InvocationSpec(skip_pull=True))
    assert fake.calls[0][:3] == ["docker", "run", "-it"]


def test_custom_executable_and_timeout_are_used():
    fake = FakeProcessRunner()
    runner = _runner(fake, executable="podman", timeout=12.5)
    runner.run(runner.image(), InvocationSpec())
    assert [c[0] for c in fake.calls] == ["podman", "podman"]
    assert fake.timeouts == [12.5, 12.5]


def test_pull_failure_stops_before_run():
    fake = FakeProcessRunner(pull_exit=1)
    runner = _runner(fake)
    with pytest.raises(PullFailure) as exc:
        runner.run(runner.image(), InvocationSpec())
    assert exc.value.returncode == 1
    assert fake.actions == ["pull"]


def test_run_failure_is_surfaced_not_retried():
    fake = FakeProcessRunner(run_exit=3)
    runner = _runner(fake)
    with pytest.raises(RunFailure) as exc:
        runner.run(runner.image(), InvocationSpec(skip_pull=True))
    assert exc.value.returncode == 3
    assert exc.value.stderr == "boom\n"
    assert fake.actions == ["run"]


def test_run_failure_is_a_called_process_error():
    import subprocess

    fake = FakeProcessRunner(run_exit=2)
    runner = _runner(fake)
    with pytest.raises(subprocess.CalledProcessError):
        runner.run(runner.image(), InvocationSpec(skip_pull=True))


def test_command_line_logged_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="qcstage")
    fake = FakeProcessRunner(run_exit=1)
    runner = _runner(fake)
    with pytest.raises(RunFailure):
        runner.run(runner.image(), InvocationSpec(mount_args=["-v", "/a b:/opt/data"], skip_pull=True))
    debug = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
    assert any("Executing command: docker run -i -v '/a b:/opt/data' org/tool:latest" in m for m in debug)


def test_strict_policy_rejects_before_any_process():
    fake = FakeProcessRunner()
    runner = _runner(fake, policy=ArgumentPolicy(strict=True))
    with pytest.raises(ArgumentPolicyError):
        runner.run(runner.image(), InvocationSpec(mount_args=["--privileged"]))
    assert fake.calls == []


def test_runner_requires_image_name():
    with pytest.raises(ValueError):
        ContainerRunner("")


def test_explicit_image_reference_is_honoured():
    fake = FakeProcessRunner()
    runner = _runner(fake)
    runner.run(ImageReference("other/img", "v2"), InvocationSpec(skip_pull=True))
    assert "other/img:v2" in fake.calls[0]


def test_failure_repeats_stderr_at_error_level(caplog):
    caplog.set_level(logging.INFO)
    fake = FakeProcessRunner(run_exit=125)
    runner = _runner(fake)
    with pytest.raises(RunFailure) as exc:
        runner.run(runner.image(), InvocationSpec(skip_pull=True))
    errors = [r.getMessage() for r in caplog.records if r.levelno >= logging.ERROR]
    assert any(m.strip() == "boom" for m in errors)
    assert str(exc.value) == "Container run failed with exit status 125: boom"


def test_failure_message_without_stderr():
    err = PullFailure(1, ["docker", "pull", "x"], stderr="")
    assert str(err) == "Container pull failed with exit status 1"
