"""
Installation, verification and run result models.
"""

import shlex
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, List
from datetime import datetime

from pydantic import BaseModel, Field

from .dependency import DependencySpec


class FetchResult(BaseModel):
    """Outcome of a bounded-retry download."""
    path: Path = Field(..., description="Destination path")
    success: bool = Field(..., description="Whether an attempt succeeded")
    attempts: int = Field(..., ge=0, description="Attempts consumed")
    error: Optional[str] = Field(None, description="Last error if all attempts failed")

    @property
    def ok(self) -> bool:
        return self.success


class VerificationStatus(str, Enum):
    """Result of running a tool's version-report command."""
    OK = "ok"
    WARNING = "warning"
    NOT_RUN = "not_run"


class InstallOutcome(BaseModel):
    """Installed location and verification state of one dependency."""
    name: str = Field(..., description="Dependency name")
    installed_path: Path = Field(..., description="Install directory")
    verification: VerificationStatus = Field(default=VerificationStatus.NOT_RUN)
    spec: DependencySpec = Field(..., description="Spec the dependency was installed from")
    message: Optional[str] = Field(None, description="Verification warning, if any")

    @property
    def bin_dir(self) -> Path:
        return self.installed_path / "bin"


class EnvironmentDescriptor(BaseModel):
    """Variables later process stages source to find the installed tools."""
    variables: Dict[str, str] = Field(default_factory=dict)
    prepends: Dict[str, str] = Field(
        default_factory=dict,
        description="Path-like variables: entries put in front of the value live when sourced"
    )
    fallbacks: Dict[str, str] = Field(
        default_factory=dict,
        description="Captured values used when a path-like variable is unset when sourced"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True

    def __getitem__(self, name: str) -> str:
        return self.variables[name]

    def __contains__(self, name: object) -> bool:
        return name in self.variables

    def to_shell(self) -> str:
        """
        Render as shell-sourceable export lines.

        Path-like variables keep whatever value the sourcing shell holds,
        after the new entries. The captured value is only used when the
        variable is unset at that point.
        """
        lines = [
            "# Generated by runtime-provisioner",
            f"# {self.created_at.isoformat()}",
        ]
        for name, value in self.variables.items():
            if name not in self.prepends:
                lines.append(f"export {name}={shlex.quote(value)}")
                continue
            fallback = self.fallbacks.get(name)
            if fallback:
                lines.append(f'[ -n "${{{name}:-}}" ] || {name}={shlex.quote(fallback)}')
            lines.append(f'export {name}={shlex.quote(self.prepends[name])}"${{{name}:+:${name}}}"')
        return "\n".join(lines) + "\n"


class RunState(str, Enum):
    """Orchestrator states."""
    INIT = "init"
    INSTALLING_RUNTIME = "installing_runtime"
    INSTALLING_INTERPRETER = "installing_interpreter"
    VERIFYING = "verifying"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


class RunResult(BaseModel):
    """Terminal result of a provisioning run."""
    state: RunState = Field(..., description="Terminal state")
    transitions: List[RunState] = Field(default_factory=list, description="States visited in order")
    outcomes: List[InstallOutcome] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list, description="Verification warnings")
    descriptor_path: Optional[Path] = None
    failed_stage: Optional[str] = None
    failed_dependency: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.state == RunState.DONE else 1

    def complete(self, state: RunState) -> None:
        """Mark the run as finished in the given terminal state."""
        self.state = state
        self.completed_at = datetime.utcnow()
        self.duration_seconds = (self.completed_at - self.started_at).total_seconds()
