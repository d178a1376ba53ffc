"""
Post-install verification of toolchain executables.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Mapping, Optional

from ..utils.logging import stage_logger
from .exceptions import VerificationWarning


class Verifier:
    """Runs a tool's version-report command. Failures are warnings, never errors."""

    def __init__(self, timeout: float = 30.0, env: Optional[Mapping[str, str]] = None):
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self.env = dict(env or {})
        self.last_warning: Optional[VerificationWarning] = None

    def verify(self, executable: Path, version_flag: str,
               dependency: Optional[str] = None,
               library_dir: Optional[Path] = None) -> bool:
        """
        Check that ``executable`` runs and reports its version.

        Args:
            executable: Installed tool
            version_flag: Flag that prints the version (e.g. ``-version``)
            dependency: Name used in log messages
            library_dir: Shared library directory the tool needs at startup

        Returns:
            True if the command exited with status 0
        """
        name = dependency or Path(executable).name
        log = stage_logger(self.logger, name, "verify")
        self.last_warning = None

        env: Dict[str, str] = dict(os.environ, **self.env)
        if library_dir is not None:
            existing = env.get("LD_LIBRARY_PATH")
            env["LD_LIBRARY_PATH"] = f"{library_dir}:{existing}" if existing else str(library_dir)

        try:
            process = subprocess.run(
                [str(executable), version_flag],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            return self._warn(log, name, f"{executable} {version_flag} timed out after {self.timeout}s")
        except OSError as e:
            return self._warn(log, name, f"{executable} could not be run: {e}")

        if process.returncode != 0:
            detail = (process.stderr or process.stdout or "").strip().splitlines()
            suffix = f": {detail[-1]}" if detail else ""
            return self._warn(log, name, f"{executable} {version_flag} exited with {process.returncode}{suffix}")

        # java -version reports on stderr
        report = (process.stdout or process.stderr or "").strip().splitlines()
        log.info(f"OK: {report[0] if report else executable}")
        return True

    def _warn(self, log, name: str, message: str) -> bool:
        self.last_warning = VerificationWarning(name, message)
        log.warning(message)
        return False
