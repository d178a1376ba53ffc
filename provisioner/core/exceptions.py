"""
Error taxonomy for provisioning runs.

Every error carries the stage and dependency it came from so the orchestrator
can report exactly what failed.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base class for fatal provisioning errors."""

    default_stage = "provision"

    def __init__(self, message: str, *, stage: Optional[str] = None,
                 dependency: Optional[str] = None):
        self.stage = stage or self.default_stage
        self.dependency = dependency
        self.detail = message
        prefix = f"[{dependency}:{self.stage}]" if dependency else f"[{self.stage}]"
        super().__init__(f"{prefix} {message}")


class WorkspaceError(ProvisioningError):
    """Working, cache or build directories could not be created."""
    default_stage = "workspace"


class TransientFetchError(ProvisioningError):
    """A single download attempt failed; retried by the fetcher."""
    default_stage = "fetch"


class FatalFetchError(ProvisioningError):
    """All download attempts were exhausted."""
    default_stage = "fetch"


class ExtractionError(ProvisioningError):
    """Archive is corrupt, unsupported or could not be written out."""
    default_stage = "extract"


class BuildStageError(ProvisioningError):
    """Configure, compile or install step of a source build failed."""
    default_stage = "build"


class DescriptorWriteError(ProvisioningError):
    """Environment descriptor could not be persisted."""
    default_stage = "emit"


class VerificationWarning(UserWarning):
    """An installed tool failed to report its version. Never fatal."""

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(f"[{dependency}:verify] {message}")
