"""
tests/conftest.py — Shared fixtures and path setup for all tests.

Adds the project root to sys.path so unit tests can import:
    from config.settings import Settings
    from checker.definitions import CheckDefinition
    from checker.orchestrator import Orchestrator
"""
import pathlib
import stat
import sys

import pytest

# Make project root importable without installing as a package
PROJECT_ROOT = pathlib.Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def fake_ssh(tmp_path):
    """An executable standing in for ssh: runs its last argument locally with sh."""
    if sys.platform.startswith("win"):
        pytest.skip("fake ssh script needs a POSIX shell")
    script = tmp_path / "fake-ssh"
    script.write_text(
        "#!/bin/sh\n"
        'for last in "$@"; do :; done\n'
        'exec sh -c "$last"\n',
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)
