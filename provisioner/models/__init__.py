"""
Data models for the Runtime Provisioner.
"""

from .dependency import DependencyKind, DependencySpec, FetchPolicy, BackoffStrategy, RunConfig
from .installation import (
    FetchResult,
    VerificationStatus,
    InstallOutcome,
    EnvironmentDescriptor,
    RunState,
    RunResult,
)

__all__ = [
    "DependencyKind",
    "DependencySpec",
    "FetchPolicy",
    "BackoffStrategy",
    "RunConfig",
    "FetchResult",
    "VerificationStatus",
    "InstallOutcome",
    "EnvironmentDescriptor",
    "RunState",
    "RunResult",
]
