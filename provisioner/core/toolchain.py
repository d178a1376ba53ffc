"""
Build toolchain capability used for source installs.

The installer only supplies options and checks exit status; the toolchain's
output is written to a log file and never interpreted.
"""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence


# Shared library output, bundled pip, no docstrings/test modules/pymalloc, no IPv6.
PYTHON_CONFIGURE_OPTIONS = (
    "--enable-shared",
    "--with-ensurepip=install",
    "--without-doc-strings",
    "--disable-test-modules",
    "--without-pymalloc",
    "--disable-ipv6",
)

BUILD_FLAGS = {"CFLAGS": "-fPIC -O2"}


def configure_options(prefix: Path) -> List[str]:
    """Full ``./configure`` argument list for an interpreter installed at ``prefix``."""
    options = [f"--prefix={prefix}", *PYTHON_CONFIGURE_OPTIONS]
    options.extend(f"{name}={value}" for name, value in BUILD_FLAGS.items())
    return options


class BuildToolchain(Protocol):
    """Configure/compile/install capability. Each call returns the exit status."""

    def configure(self, source_dir: Path, options: Sequence[str]) -> int:
        ...

    def compile(self, source_dir: Path, jobs: int) -> int:
        ...

    def install(self, source_dir: Path) -> int:
        ...


class MakeToolchain:
    """Runs ``./configure``, ``make -j N`` and ``make install`` with the host compiler."""

    def __init__(self,
                 env: Optional[Mapping[str, str]] = None,
                 timeout: Optional[float] = None,
                 make: str = "make"):
        """
        Initialize the toolchain.

        Args:
            env: Extra environment for every command
            timeout: Seconds allowed per stage, None for no limit
            make: Build driver executable
        """
        self.logger = logging.getLogger(__name__)
        self.env = dict(env or {})
        self.timeout = timeout
        self.make = make

    def configure(self, source_dir: Path, options: Sequence[str]) -> int:
        return self._run("configure", ["./configure", *options], source_dir)

    def compile(self, source_dir: Path, jobs: int) -> int:
        return self._run("compile", [self.make, f"-j{jobs}"], source_dir)

    def install(self, source_dir: Path) -> int:
        return self._run("install", [self.make, "install"], source_dir)

    def _run(self, stage: str, argv: List[str], source_dir: Path) -> int:
        source_dir = Path(source_dir)
        log_path = source_dir.parent / f"{source_dir.name}.{stage}.log"
        env: Dict[str, str] = dict(os.environ, **self.env)
        self.logger.info(f"CMD {' '.join(shlex.quote(a) for a in argv)} (cwd={source_dir})")

        try:
            with open(log_path, "w") as log_file:
                process = subprocess.run(
                    argv,
                    cwd=source_dir,
                    env=env,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    timeout=self.timeout,
                )
        except subprocess.TimeoutExpired:
            self.logger.error(f"{stage} timed out after {self.timeout} seconds")
            return 124
        except OSError as e:
            self.logger.error(f"{stage} could not be started: {e}")
            return 127

        if process.returncode != 0:
            self.logger.error(f"{stage} exited with {process.returncode}; output tail:\n{self._tail(log_path)}")
        return process.returncode

    @staticmethod
    def _tail(log_path: Path, lines: int = 20) -> str:
        try:
            return "\n".join(log_path.read_text(errors="replace").splitlines()[-lines:])
        except OSError:
            return ""
