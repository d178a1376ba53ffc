"""
Provisioning orchestrator - installs the runtime and the interpreter in order,
verifies them and emits the environment descriptor.
"""

from pathlib import Path
from typing import List, Optional

from ..models.dependency import DependencySpec, RunConfig
from ..models.installation import (
    InstallOutcome,
    RunResult,
    RunState,
    VerificationStatus,
)
from ..utils.logging import setup_logger
from .environment import EnvironmentEmitter
from .exceptions import ProvisioningError, WorkspaceError
from .fetcher import Fetcher
from .installers import BinaryInstaller, SourceInstaller
from .toolchain import BuildToolchain
from .verifier import Verifier


class ProvisioningOrchestrator:
    """
    Runs a provisioning pass as an explicit state machine::

        init -> installing_runtime -> installing_interpreter
             -> verifying -> emitting -> done

    Any ProvisioningError moves the run to ``failed`` and stops it; later
    stages never run. Verification only produces warnings.
    """

    def __init__(self,
                 config: RunConfig,
                 fetcher: Optional[Fetcher] = None,
                 toolchain: Optional[BuildToolchain] = None,
                 verifier: Optional[Verifier] = None,
                 emitter: Optional[EnvironmentEmitter] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Immutable run configuration
            fetcher: Downloader shared by both installers
            toolchain: Build toolchain for the source install
            verifier: Version-report checker
            emitter: Environment descriptor writer
        """
        self.logger = setup_logger(__name__)
        self.config = config
        self.fetcher = fetcher or Fetcher(config.fetch)
        self.binary_installer = BinaryInstaller(config, self.fetcher)
        self.source_installer = SourceInstaller(config, self.fetcher, toolchain)
        self.verifier = verifier or Verifier(
            timeout=config.verify_timeout_seconds,
            env=config.build_env,
        )
        self.emitter = emitter or EnvironmentEmitter(config.descriptor_path, config.base_env)
        self.result: Optional[RunResult] = None

    def run(self) -> RunResult:
        """
        Execute the provisioning run.

        Returns:
            RunResult in state ``done`` or ``failed``
        """
        self.result = RunResult(state=RunState.INIT, transitions=[RunState.INIT])
        self.logger.info(
            f"Starting provisioning run (runtime={self.config.runtime.name} {self.config.runtime.version}, "
            f"interpreter={self.config.interpreter.name} {self.config.interpreter.version})"
        )

        try:
            self._prepare_workspace()

            self._enter(RunState.INSTALLING_RUNTIME)
            self._install(self.binary_installer, self.config.runtime)

            self._enter(RunState.INSTALLING_INTERPRETER)
            self._install(self.source_installer, self.config.interpreter)

            self._enter(RunState.VERIFYING)
            self._verify_all(self.result.outcomes)

            self._enter(RunState.EMITTING)
            descriptor = self.emitter.emit(self.result.outcomes)
            self.result.descriptor_path = self.emitter.write(descriptor)
        except ProvisioningError as e:
            return self._fail(e)

        self._enter(RunState.DONE)
        self.result.complete(RunState.DONE)
        self._log_summary()
        return self.result

    def _enter(self, state: RunState) -> None:
        previous = self.result.state
        self.result.state = state
        self.result.transitions.append(state)
        self.logger.info(f"[provision] state {previous.value} -> {state.value}")

    def _prepare_workspace(self) -> None:
        for path in (self.config.working_dir, self.config.cache_dir,
                     self.config.scratch_dir, self.config.build_dir):
            try:
                Path(path).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WorkspaceError(f"Cannot create {path}: {e}") from e
        self.logger.info(f"Working directory {self.config.working_dir}, cache {self.config.cache_dir}")

    def _install(self, installer, spec: DependencySpec) -> None:
        installed_path = installer.install(spec)
        self.result.outcomes.append(InstallOutcome(
            name=spec.name,
            installed_path=installed_path,
            spec=spec,
        ))

    def _verify_all(self, outcomes: List[InstallOutcome]) -> None:
        for outcome in outcomes:
            spec = outcome.spec
            ok = self.verifier.verify(
                outcome.installed_path / spec.executable,
                spec.version_flag,
                dependency=spec.name,
                library_dir=spec.library_dir,
            )
            if ok:
                outcome.verification = VerificationStatus.OK
            else:
                outcome.verification = VerificationStatus.WARNING
                warning = self.verifier.last_warning
                outcome.message = str(warning) if warning else f"[{spec.name}:verify] version check failed"
                self.result.warnings.append(outcome.message)

    def _fail(self, error: ProvisioningError) -> RunResult:
        failed_in = self.result.state
        self.result.failed_stage = error.stage
        self.result.failed_dependency = error.dependency
        self.result.error = str(error)
        self._enter(RunState.FAILED)
        self.result.complete(RunState.FAILED)
        self.logger.error(
            f"[provision] FAILED in state {failed_in.value} at stage '{error.stage}'"
            f"{f' of {error.dependency}' if error.dependency else ''}: {error.detail}",
            exc_info=True,
        )
        return self.result

    def _log_summary(self) -> None:
        self.logger.info("=" * 60)
        self.logger.info("PROVISIONING SUMMARY")
        self.logger.info("=" * 60)
        for outcome in self.result.outcomes:
            self.logger.info(f"{outcome.name}: {outcome.installed_path} (verification: {outcome.verification.value})")
        for warning in self.result.warnings:
            self.logger.warning(f"Warning: {warning}")
        self.logger.info(f"Descriptor: {self.result.descriptor_path}")
        self.logger.info(f"Duration: {self.result.duration_seconds:.2f} seconds")
        self.logger.info("=" * 60)
