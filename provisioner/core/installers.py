"""
Installers for binary-distribution and build-from-source dependencies.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional, Tuple

from ..models.dependency import DependencySpec, RunConfig
from ..utils.logging import stage_logger
from .archive import extract_archive, is_archive
from .exceptions import BuildStageError, ExtractionError, WorkspaceError
from .fetcher import Fetcher
from .toolchain import BuildToolchain, MakeToolchain, configure_options


def _reset_directory(path: Path, dependency: str) -> None:
    """Create ``path`` empty, removing anything a previous run left there."""
    try:
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
    except OSError as e:
        raise WorkspaceError(f"Cannot prepare {path}: {e}", dependency=dependency) from e


class BinaryInstaller:
    """Installs a prebuilt archive by extracting it into the target directory."""

    def __init__(self, config: RunConfig, fetcher: Fetcher):
        self.logger = logging.getLogger(__name__)
        self.config = config
        self.fetcher = fetcher

    def install(self, spec: DependencySpec) -> Path:
        """
        Download and unpack a binary distribution.

        Args:
            spec: Dependency to install

        Returns:
            Install directory (``spec.target_dir``)

        Raises:
            FatalFetchError: Download attempts exhausted
            ExtractionError: Archive could not be unpacked
        """
        url = spec.resolve_url()
        target = spec.target_dir
        archive = self.config.scratch_dir / spec.archive_filename

        stage_logger(self.logger, spec.name, "prepare").info(f"Installing {spec.name} {spec.version} into {target}")
        _reset_directory(target, spec.name)

        try:
            self.fetcher.fetch_or_raise(url, archive, dependency=spec.name)

            log = stage_logger(self.logger, spec.name, "extract")
            log.info(f"Extracting {archive.name} into {target}")
            count = extract_archive(archive, target, strip_components=1, dependency=spec.name)
            log.info(f"Extracted {count} entries")
        finally:
            archive.unlink(missing_ok=True)

        stage_logger(self.logger, spec.name, "install").info(f"{spec.name} {spec.version} installed at {target}")
        return target


class SourceInstaller:
    """Builds a dependency from a source archive with the host toolchain."""

    def __init__(self, config: RunConfig, fetcher: Fetcher,
                 toolchain: Optional[BuildToolchain] = None):
        """
        Initialize the source installer.

        Args:
            config: Run configuration
            fetcher: Downloader for the source archive
            toolchain: Configure/compile/install capability (defaults to make)
        """
        self.logger = logging.getLogger(__name__)
        self.config = config
        self.fetcher = fetcher
        self.toolchain = toolchain or MakeToolchain(
            env=config.build_env,
            timeout=config.build_timeout_seconds,
        )

    def install(self, spec: DependencySpec) -> Path:
        """
        Fetch, extract, configure, compile and install a source dependency.

        Args:
            spec: Dependency to build

        Returns:
            Install directory (``spec.target_dir``)

        Raises:
            FatalFetchError: Download attempts exhausted
            ExtractionError: Source archive could not be unpacked
            BuildStageError: configure, compile or install failed
        """
        target = spec.target_dir
        archive, from_cache = self._cached_archive(spec)
        source_dir = self.config.build_dir / f"{spec.name}-{spec.version}"

        try:
            self._extract_source(spec, archive, source_dir)
        except ExtractionError as e:
            if not from_cache:
                raise
            # Cache hit that only looked like an archive (e.g. truncated)
            stage_logger(self.logger, spec.name, "fetch").warning(
                f"Cached archive {archive} is unreadable ({e.detail}), downloading again"
            )
            self.fetcher.fetch_or_raise(spec.resolve_url(), archive, dependency=spec.name)
            self._extract_source(spec, archive, source_dir)

        _reset_directory(target, spec.name)

        self._run_stage(spec, "configure", lambda: self.toolchain.configure(source_dir, configure_options(target)))
        self._run_stage(spec, "compile", lambda: self.toolchain.compile(source_dir, self.config.build_jobs))
        self._run_stage(spec, "install", lambda: self.toolchain.install(source_dir))

        if not self.config.keep_build_dir:
            shutil.rmtree(source_dir, ignore_errors=True)

        stage_logger(self.logger, spec.name, "install").info(f"{spec.name} {spec.version} installed at {target}")
        return target

    def _cached_archive(self, spec: DependencySpec) -> Tuple[Path, bool]:
        """Return the source archive and whether it came from the cache."""
        archive = self.config.cache_dir / spec.archive_filename
        log = stage_logger(self.logger, spec.name, "fetch")
        if is_archive(archive):
            log.info(f"Using cached source archive {archive}")
            return archive, True
        self.fetcher.fetch_or_raise(spec.resolve_url(), archive, dependency=spec.name)
        return archive, False

    def _extract_source(self, spec: DependencySpec, archive: Path, source_dir: Path) -> None:
        log = stage_logger(self.logger, spec.name, "extract")
        log.info(f"Extracting {archive.name} into {source_dir}")
        _reset_directory(source_dir, spec.name)
        try:
            extract_archive(archive, source_dir, strip_components=1, dependency=spec.name)
        except ExtractionError:
            # A corrupt archive must not poison later runs
            archive.unlink(missing_ok=True)
            raise

    def _run_stage(self, spec: DependencySpec, stage: str, step) -> None:
        log = stage_logger(self.logger, spec.name, stage)
        log.info(f"Running {stage}")
        status = step()
        if status != 0:
            raise BuildStageError(f"{stage} failed with exit status {status}",
                                  stage=stage, dependency=spec.name)
        log.info(f"{stage} finished")
