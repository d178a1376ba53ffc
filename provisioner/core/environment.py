"""
Environment descriptor generation.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..models.installation import EnvironmentDescriptor, InstallOutcome
from ..utils.logging import stage_logger
from .exceptions import DescriptorWriteError


def prepend_paths(existing: Optional[str], additions: Sequence[str], sep: str = os.pathsep) -> str:
    """
    Put ``additions`` in front of an existing path-like value.

    The existing value is kept verbatim, last. Duplicate additions are
    dropped.

    >>> prepend_paths("/usr/bin", ["/opt/a/bin", "/opt/b/bin"], ":")
    '/opt/a/bin:/opt/b/bin:/usr/bin'
    """
    entries: List[str] = []
    for entry in additions:
        if entry and entry not in entries:
            entries.append(entry)
    if existing:
        entries.append(existing)
    return sep.join(entries)


class EnvironmentEmitter:
    """Turns install outcomes into a sourceable environment file."""

    def __init__(self, destination: Path, base_env: Optional[Mapping[str, str]] = None):
        """
        Initialize the emitter.

        Args:
            destination: Descriptor file to write
            base_env: Pre-existing values of path-like variables to append to
        """
        self.logger = logging.getLogger(__name__)
        self.destination = Path(destination)
        self.base_env = dict(base_env or {})

    def emit(self, outcomes: Iterable[InstallOutcome]) -> EnvironmentDescriptor:
        """Build the descriptor; most recently installed dependency goes first on PATH."""
        recent_first = list(outcomes)[::-1]
        variables: Dict[str, str] = {}
        prepends: Dict[str, str] = {}
        fallbacks: Dict[str, str] = {}

        for outcome in reversed(recent_first):
            if outcome.spec.home_variable:
                variables[outcome.spec.home_variable] = str(outcome.installed_path)

        path_entries = {
            "PATH": [str(o.bin_dir) for o in recent_first],
            "PYTHONPATH": [str(o.spec.module_dir) for o in recent_first if o.spec.module_dir],
            "LD_LIBRARY_PATH": [str(o.spec.library_dir) for o in recent_first if o.spec.library_dir],
        }
        for name, entries in path_entries.items():
            if not entries:
                continue
            existing = self.base_env.get(name)
            variables[name] = prepend_paths(existing, entries)
            prepends[name] = prepend_paths(None, entries)
            if existing:
                fallbacks[name] = existing

        return EnvironmentDescriptor(variables=variables, prepends=prepends, fallbacks=fallbacks)

    def write(self, descriptor: EnvironmentDescriptor) -> Path:
        """
        Persist the descriptor atomically.

        Raises:
            DescriptorWriteError: If the file cannot be written; no partial
                file is left behind
        """
        log = stage_logger(self.logger, "environment", "emit")
        tmp_name: Optional[str] = None
        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.destination.parent,
                prefix=f".{self.destination.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w") as handle:
                handle.write(descriptor.to_shell())
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.destination)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise DescriptorWriteError(
                f"Cannot write {self.destination}: {e}", dependency="environment"
            ) from e

        log.info(f"Wrote {len(descriptor.variables)} variables to {self.destination}")
        return self.destination
