"""
Configuration settings for the Runtime Provisioner.
"""

from typing import Optional, Dict
from pathlib import Path
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings

from provisioner.models.dependency import (
    BackoffStrategy,
    DependencyKind,
    DependencySpec,
    FetchPolicy,
    RunConfig,
)


ADOPTIUM_URL_TEMPLATE = (
    "https://api.adoptium.net/v3/binary/latest/{version}/ga/{platform}/jdk/hotspot/normal/eclipse"
)
PYTHON_URL_TEMPLATE = "https://www.python.org/ftp/python/{version}/Python-{version}.tgz"

# Path-like variables whose existing values the descriptor appends to
INHERITED_PATH_VARIABLES = ("PATH", "PYTHONPATH", "LD_LIBRARY_PATH")

# Working-dir entries the provisioner owns; install targets are wiped before use
RESERVED_SUBDIRS = (".provision", ".profile.d")


def _check_install_subdir(v: str) -> str:
    subdir = Path(v)
    if not v.strip() or subdir.is_absolute() or ".." in subdir.parts or subdir == Path("."):
        raise ValueError(f"install_subdir must be a relative directory inside the working dir: {v!r}")
    if subdir.parts[0] in RESERVED_SUBDIRS:
        raise ValueError(f"install_subdir {v!r} would overwrite provisioner state")
    return v


class FetchConfig(BaseModel):
    """Download retry configuration."""
    max_attempts: int = Field(default=3, ge=1, description="Attempts per download")
    retry_delay_seconds: float = Field(default=2.0, ge=0.0, description="Delay between attempts")
    backoff: BackoffStrategy = Field(default=BackoffStrategy.FIXED, description="fixed or exponential")
    max_delay_seconds: float = Field(default=30.0, ge=0.0, description="Upper bound for exponential delay")
    jitter: float = Field(default=0.0, ge=0.0, le=1.0, description="Random fraction added to delays")
    timeout_seconds: float = Field(default=60.0, gt=0.0, description="Per-attempt timeout")

    def to_policy(self) -> FetchPolicy:
        return FetchPolicy(**self.model_dump())


class RuntimeConfig(BaseModel):
    """Managed runtime (JDK) configuration."""
    name: str = Field(default="jdk", description="Dependency name")
    version: str = Field(default="17", description="Feature release to install")
    url_template: str = Field(default=ADOPTIUM_URL_TEMPLATE, description="Binary download URL template")
    platform: str = Field(default="linux/x64", description="Platform identifier (os/arch)")
    archive_type: str = Field(default="tar.gz", description="Archive type of the download")
    install_subdir: str = Field(default=".jdk", description="Install directory under the working dir")
    executable: str = Field(default="bin/java", description="Executable used for verification")
    version_flag: str = Field(default="-version", description="Version-report flag")
    home_variable: str = Field(default="JAVA_HOME", description="Variable pointing at the install")

    @validator('install_subdir')
    def validate_install_subdir(cls, v):
        return _check_install_subdir(v)


class InterpreterConfig(BaseModel):
    """Interpreter (CPython) configuration."""
    name: str = Field(default="python", description="Dependency name")
    version: str = Field(default="3.11.9", description="Exact release to build")
    url_template: str = Field(default=PYTHON_URL_TEMPLATE, description="Source archive URL template")
    archive_type: str = Field(default="tgz", description="Archive type of the download")
    install_subdir: str = Field(default=".python", description="Install directory under the working dir")
    executable: str = Field(default="bin/python3", description="Executable used for verification")
    version_flag: str = Field(default="--version", description="Version-report flag")
    module_path_template: str = Field(
        default="lib/python{series}/site-packages",
        description="Package directory added to PYTHONPATH"
    )
    library_subdir: str = Field(default="lib", description="Shared library directory")

    @validator('install_subdir')
    def validate_install_subdir(cls, v):
        return _check_install_subdir(v)


class BuildConfig(BaseModel):
    """Source build configuration."""
    jobs: Optional[int] = Field(None, ge=1, description="Compile jobs (default: all CPUs)")
    timeout_seconds: Optional[float] = Field(default=3600.0, description="Timeout per build stage")
    keep_build_dir: bool = Field(default=False, description="Keep the scratch build tree")
    verify_timeout_seconds: float = Field(default=30.0, gt=0.0, description="Version check timeout")
    extra_env: Dict[str, str] = Field(default_factory=dict, description="Extra environment for build commands")


class PathsConfig(BaseModel):
    """Default working and cache directories."""
    working_dir: Path = Field(default=Path("/tmp/provision/app"), description="Install root")
    cache_dir: Path = Field(default=Path("/tmp/provision/cache"), description="Download cache")

    @validator('working_dir', 'cache_dir')
    def expand_path(cls, v):
        return Path(v).expanduser()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    file_path: Optional[Path] = Field(None, description="Log file (default: <working_dir>/.provision/provision.log)")
    max_file_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(default=5, description="Number of log backups to keep")

    @validator('level')
    def validate_level(cls, v):
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()


class Settings(BaseSettings):
    """Main application settings."""
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    interpreter: InterpreterConfig = Field(default_factory=InterpreterConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        env_prefix = "PROVISION_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"
        extra = "ignore"  # Ignore extra fields from environment

    def log_file(self, working_dir: Optional[Path] = None) -> Path:
        """Log file path, defaulting to the working directory's state dir."""
        if self.logging.file_path:
            return self.logging.file_path
        return Path(working_dir or self.paths.working_dir) / ".provision" / "provision.log"

    def to_run_config(self,
                      working_dir: Optional[Path] = None,
                      cache_dir: Optional[Path] = None,
                      base_env: Optional[Dict[str, str]] = None,
                      build_jobs: Optional[int] = None) -> RunConfig:
        """
        Resolve settings into the immutable RunConfig threaded through a run.

        Args:
            working_dir: Override for the install root
            cache_dir: Override for the download cache
            base_env: Pre-existing path-like variable values
            build_jobs: Compile jobs when not configured

        Returns:
            RunConfig
        """
        work = Path(working_dir or self.paths.working_dir).expanduser().absolute()
        cache = Path(cache_dir or self.paths.cache_dir).expanduser().absolute()

        runtime = DependencySpec(
            name=self.runtime.name,
            version=self.runtime.version,
            url_template=self.runtime.url_template,
            target_dir=work / self.runtime.install_subdir,
            kind=DependencyKind.BINARY,
            platform=self.runtime.platform,
            archive_type=self.runtime.archive_type,
            executable=self.runtime.executable,
            version_flag=self.runtime.version_flag,
            home_variable=self.runtime.home_variable,
        )
        interpreter = DependencySpec(
            name=self.interpreter.name,
            version=self.interpreter.version,
            url_template=self.interpreter.url_template,
            target_dir=work / self.interpreter.install_subdir,
            kind=DependencyKind.SOURCE,
            archive_type=self.interpreter.archive_type,
            executable=self.interpreter.executable,
            version_flag=self.interpreter.version_flag,
            module_path_template=self.interpreter.module_path_template,
            library_subdir=self.interpreter.library_subdir,
        )

        return RunConfig(
            working_dir=work,
            cache_dir=cache,
            runtime=runtime,
            interpreter=interpreter,
            fetch=self.fetch.to_policy(),
            build_jobs=self.build.jobs or build_jobs or 1,
            build_timeout_seconds=self.build.timeout_seconds,
            verify_timeout_seconds=self.build.verify_timeout_seconds,
            keep_build_dir=self.build.keep_build_dir,
            base_env=dict(base_env or {}),
            build_env={"DEBIAN_FRONTEND": "noninteractive", **self.build.extra_env},
        )
