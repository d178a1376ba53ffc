"""
Core modules for the Runtime Provisioner.
"""

from .fetcher import Fetcher
from .installers import BinaryInstaller, SourceInstaller
from .toolchain import BuildToolchain, MakeToolchain
from .verifier import Verifier
from .environment import EnvironmentEmitter, prepend_paths
from .orchestrator import ProvisioningOrchestrator

__all__ = [
    "Fetcher",
    "BinaryInstaller",
    "SourceInstaller",
    "BuildToolchain",
    "MakeToolchain",
    "Verifier",
    "EnvironmentEmitter",
    "prepend_paths",
    "ProvisioningOrchestrator",
]
