import logging
import os
import sys

import pytest

from tests.helpers.shim import install_shim


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.fixture
def shim_bin(tmp_path):
    """Directory holding a fake ``docker`` executable; prepend it to PATH."""
    if sys.platform.startswith("win"):
        pytest.skip("shell-less shim scripts need a POSIX host")
    bin_dir = tmp_path / "shim_bin"
    install_shim(bin_dir)
    return bin_dir


@pytest.fixture
def shim_env(shim_bin, tmp_path, monkeypatch):
    """PATH + call log wired up for the fake runtime. Returns the log path."""
    log = tmp_path / "shim_calls.jsonl"
    monkeypatch.setenv("PATH", str(shim_bin) + os.pathsep + os.environ["PATH"])
    monkeypatch.setenv("QCSTAGE_SHIM_LOG", str(log))
    for var in ("QCSTAGE_SHIM_PULL_EXIT", "QCSTAGE_SHIM_RUN_EXIT", "QCSTAGE_SHIM_NO_OUTPUT"):
        monkeypatch.delenv(var, raising=False)
    return log
