"""
Tests for the version-report verifier.
"""

import pytest

from provisioner.core.exceptions import VerificationWarning
from provisioner.core.verifier import Verifier


def script(tmp_path, name, body):
    path = tmp_path / name
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755)
    return path


class TestVerifier:

    def test_zero_exit_is_ok(self, tmp_path):
        tool = script(tmp_path, "java", 'echo "openjdk version 17" >&2')
        verifier = Verifier()

        assert verifier.verify(tool, "-version", dependency="jdk") is True
        assert verifier.last_warning is None

    def test_passes_version_flag(self, tmp_path):
        tool = script(tmp_path, "tool", '[ "$1" = "--version" ] || exit 3')

        assert Verifier().verify(tool, "--version") is True
        assert Verifier().verify(tool, "-V") is False

    def test_non_zero_exit_is_warning_not_error(self, tmp_path):
        tool = script(tmp_path, "python3", 'echo "error while loading shared libraries" >&2; exit 127')
        verifier = Verifier()

        assert verifier.verify(tool, "--version", dependency="python") is False
        assert isinstance(verifier.last_warning, VerificationWarning)
        assert "python:verify" in str(verifier.last_warning)
        assert "shared libraries" in str(verifier.last_warning)

    def test_missing_executable_is_warning(self, tmp_path):
        verifier = Verifier()

        assert verifier.verify(tmp_path / "bin" / "absent", "--version") is False
        assert verifier.last_warning is not None

    def test_timeout_is_warning(self, tmp_path):
        tool = script(tmp_path, "slow", "sleep 5")
        verifier = Verifier(timeout=0.2)

        assert verifier.verify(tool, "--version") is False
        assert "timed out" in str(verifier.last_warning)

    def test_library_dir_is_exposed(self, tmp_path):
        libdir = tmp_path / "lib"
        tool = script(tmp_path, "tool", f'case "$LD_LIBRARY_PATH" in {libdir}*) exit 0;; *) exit 1;; esac')

        assert Verifier().verify(tool, "--version", library_dir=libdir) is True

    def test_build_env_is_applied(self, tmp_path):
        tool = script(tmp_path, "tool", '[ "$DEBIAN_FRONTEND" = "noninteractive" ]')

        assert Verifier(env={"DEBIAN_FRONTEND": "noninteractive"}).verify(tool, "--version") is True

    def test_warning_resets_between_calls(self, tmp_path):
        bad = script(tmp_path, "bad", "exit 1")
        good = script(tmp_path, "good", "exit 0")
        verifier = Verifier()

        verifier.verify(bad, "--version")
        verifier.verify(good, "--version")

        assert verifier.last_warning is None


@pytest.mark.parametrize("body", ["exit 1", "exit 2", "kill -9 $$"])
def test_never_raises(tmp_path, body):
    tool = script(tmp_path, "tool", body)
    assert Verifier().verify(tool, "--version") is False
