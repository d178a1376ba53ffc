"""
Shared fixtures: in-memory archives, a scripted network opener and a
recording build toolchain.
"""

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from provisioner.models.dependency import DependencyKind, DependencySpec, FetchPolicy, RunConfig


RUNTIME_URL = "https://downloads.example.test/jdk/{version}/{platform}/jdk.tar.gz"
INTERPRETER_URL = "https://downloads.example.test/python/{version}/Python-{version}.tgz"


def make_tarball(files: Dict[str, bytes], top: Optional[str] = "pkg-1.0",
                 modes: Optional[Dict[str, int]] = None, compression: str = "gz") -> bytes:
    """Build a tar archive whose members sit under a single top-level directory."""
    modes = modes or {}
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=f"w:{compression}") as tar:
        if top:
            info = tarfile.TarInfo(top)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(f"{top}/{name}" if top else name)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_zip(files: Dict[str, bytes], top: str = "pkg-1.0") -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(f"{top}/{name}", data)
    return buf.getvalue()


JAVA_SCRIPT = b"#!/bin/sh\necho 'openjdk version \"17.0.9\"' >&2\n"

RUNTIME_ARCHIVE = make_tarball(
    {"bin/java": JAVA_SCRIPT, "lib/libjvm.so": b"\x7fELF", "release": b'JAVA_VERSION="17.0.9"\n'},
    top="jdk-17.0.9+9",
    modes={"bin/java": 0o755},
)

INTERPRETER_ARCHIVE = make_tarball(
    {"configure": b"#!/bin/sh\nexit 0\n", "Makefile": b"all:\n", "Python/ceval.c": b"/* */\n"},
    top="Python-3.11.9",
    modes={"configure": 0o755},
)


class FakeResponse:
    """Minimal urlopen response: streams ``data``, optionally dying midway."""

    def __init__(self, data: bytes, status: int = 200, fail_after: Optional[int] = None):
        self.stream = io.BytesIO(data)
        self.status = status
        self.fail_after = fail_after
        self.sent = 0

    def read(self, size: int = -1) -> bytes:
        if self.fail_after is not None and self.sent >= self.fail_after:
            raise ConnectionResetError("connection reset by peer")
        if self.fail_after is not None:
            size = min(size if size > 0 else self.fail_after, self.fail_after - self.sent)
        chunk = self.stream.read(size)
        self.sent += len(chunk)
        return chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeOpener:
    """
    Scripted replacement for urlopen.

    ``routes`` maps a URL to a list of outcomes consumed one per attempt; an
    outcome is bytes (success), an exception instance (raised) or a
    FakeResponse. The last outcome repeats once the list is exhausted.
    """

    def __init__(self, routes: Optional[Dict[str, list]] = None):
        self.routes = routes or {}
        self.calls: List[str] = []
        self.timeouts: List[float] = []

    def __call__(self, url: str, timeout: float):
        self.calls.append(url)
        self.timeouts.append(timeout)
        outcomes = self.routes.get(url)
        if not outcomes:
            raise ConnectionRefusedError(f"no route to {url}")
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(outcome)


class FakeToolchain:
    """Records configure/compile/install calls and fails a chosen stage."""

    def __init__(self, fail_stage: Optional[str] = None, python_script: bytes = b"#!/bin/sh\necho Python 3.11.9\n"):
        self.fail_stage = fail_stage
        self.python_script = python_script
        self.calls: List[tuple] = []
        self.prefix: Optional[Path] = None

    def configure(self, source_dir, options):
        self.calls.append(("configure", Path(source_dir), list(options)))
        for option in options:
            if option.startswith("--prefix="):
                self.prefix = Path(option.split("=", 1)[1])
        return self._status("configure")

    def compile(self, source_dir, jobs):
        self.calls.append(("compile", Path(source_dir), jobs))
        return self._status("compile")

    def install(self, source_dir):
        self.calls.append(("install", Path(source_dir)))
        status = self._status("install")
        if status == 0 and self.prefix is not None:
            bin_dir = self.prefix / "bin"
            bin_dir.mkdir(parents=True, exist_ok=True)
            python = bin_dir / "python3"
            python.write_bytes(self.python_script)
            python.chmod(0o755)
            (self.prefix / "lib" / "python3.11" / "site-packages").mkdir(parents=True, exist_ok=True)
        return status

    @property
    def stages(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _status(self, stage: str) -> int:
        return 2 if stage == self.fail_stage else 0


class FakeVerifier:
    """Verifier stand-in with per-dependency results."""

    def __init__(self, results: Optional[Dict[str, bool]] = None):
        self.results = results or {}
        self.calls: List[tuple] = []
        self.last_warning = None

    def verify(self, executable, version_flag, dependency=None, library_dir=None):
        self.calls.append((dependency, Path(executable), version_flag))
        ok = self.results.get(dependency, True)
        self.last_warning = None if ok else UserWarning(f"[{dependency}:verify] {executable} exited with 1")
        return ok


@pytest.fixture
def run_config(tmp_path) -> RunConfig:
    work = tmp_path / "app"
    return RunConfig(
        working_dir=work,
        cache_dir=tmp_path / "cache",
        runtime=DependencySpec(
            name="jdk",
            version="17",
            url_template=RUNTIME_URL,
            target_dir=work / ".jdk",
            kind=DependencyKind.BINARY,
            platform="linux/x64",
            executable="bin/java",
            version_flag="-version",
            home_variable="JAVA_HOME",
        ),
        interpreter=DependencySpec(
            name="python",
            version="3.11.9",
            url_template=INTERPRETER_URL,
            target_dir=work / ".python",
            kind=DependencyKind.SOURCE,
            archive_type="tgz",
            executable="bin/python3",
            module_path_template="lib/python{series}/site-packages",
            library_subdir="lib",
        ),
        fetch=FetchPolicy(max_attempts=3, retry_delay_seconds=2.0),
        build_jobs=4,
        base_env={"PATH": "/usr/local/bin:/usr/bin"},
    )


@pytest.fixture
def runtime_url(run_config) -> str:
    return run_config.runtime.resolve_url()


@pytest.fixture
def interpreter_url(run_config) -> str:
    return run_config.interpreter.resolve_url()


@pytest.fixture
def sleeps() -> List[float]:
    return []
