"""
Dependency and run configuration models.
"""

import random
import string
from enum import Enum
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, model_validator, validator


TEMPLATE_FIELDS = {"version", "series", "platform"}


class DependencyKind(str, Enum):
    """How a dependency is installed."""
    BINARY = "binary"
    SOURCE = "source"


class BackoffStrategy(str, Enum):
    """Delay growth between fetch attempts."""
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


def template_fields(template: str) -> set:
    """Return the replacement field names used by a format template."""
    return {
        field_name
        for _, field_name, _, _ in string.Formatter().parse(template)
        if field_name is not None
    }


class DependencySpec(BaseModel):
    """Specification for a toolchain to be installed."""
    name: str = Field(..., description="Dependency name, used in logs and file names")
    version: str = Field(..., description="Target version")
    url_template: str = Field(..., description="Download URL template ({version}, {series}, {platform})")
    target_dir: Path = Field(..., description="Directory the toolchain is installed into")
    kind: DependencyKind = Field(default=DependencyKind.BINARY, description="Install method")
    platform: Optional[str] = Field(None, description="Platform identifier for binary downloads")
    archive_type: str = Field(default="tar.gz", description="Archive type: tar.gz, tgz, tar.xz, tar.bz2, tar, zip")
    executable: str = Field(..., description="Tool executable relative to target_dir")
    version_flag: str = Field(default="--version", description="Flag that makes the tool report its version")
    home_variable: Optional[str] = Field(None, description="Environment variable pointing at target_dir")
    module_path_template: Optional[str] = Field(None, description="Package directory relative to target_dir")
    library_subdir: Optional[str] = Field(None, description="Shared library directory relative to target_dir")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "name": "jdk",
                "version": "17",
                "url_template": "https://api.adoptium.net/v3/binary/latest/{version}/ga/{platform}/jdk/hotspot/normal/eclipse",
                "target_dir": "/tmp/provision/app/.jdk",
                "kind": "binary",
                "platform": "linux/x64",
                "executable": "bin/java",
                "version_flag": "-version",
                "home_variable": "JAVA_HOME"
            }
        }

    @validator('name')
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Dependency name must not be empty")
        return v

    @validator('version')
    def validate_version(cls, v):
        if not v or not v.strip():
            raise ValueError("Version must not be empty")
        if any(ch.isspace() for ch in v) or "/" in v or "\\" in v:
            raise ValueError(f"Version contains invalid characters: {v!r}")
        return v

    @validator('url_template')
    def validate_url_template(cls, v):
        try:
            fields = template_fields(v)
        except ValueError as e:
            raise ValueError(f"Malformed URL template {v!r}: {e}")
        if "version" not in fields:
            raise ValueError("URL template must contain {version}")
        unknown = fields - TEMPLATE_FIELDS
        if unknown:
            raise ValueError(f"URL template uses unknown fields: {sorted(unknown)}")
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError(f"URL template must be an http(s) URL: {v}")
        return v

    @validator('archive_type')
    def validate_archive_type(cls, v):
        if v not in ("tar.gz", "tgz", "tar.xz", "tar.bz2", "tar", "zip"):
            raise ValueError(f"Unsupported archive type: {v}")
        return v

    @validator('module_path_template')
    def validate_module_path_template(cls, v):
        if v is not None:
            unknown = template_fields(v) - {"version", "series"}
            if unknown:
                raise ValueError(f"Module path template uses unknown fields: {sorted(unknown)}")
        return v

    @model_validator(mode="after")
    def validate_platform(self):
        if "platform" in template_fields(self.url_template) and not self.platform:
            raise ValueError(f"{self.name}: URL template needs a platform identifier")
        return self

    @property
    def series(self) -> str:
        """Major.minor part of the version ("3.11.9" -> "3.11")."""
        return ".".join(self.version.split(".")[:2])

    def resolve_url(self) -> str:
        """Build the download URL for this dependency."""
        return self.url_template.format(
            version=self.version,
            series=self.series,
            platform=self.platform or "",
        )

    @property
    def archive_filename(self) -> str:
        return f"{self.name}-{self.version}.{self.archive_type}"

    @property
    def bin_dir(self) -> Path:
        return self.target_dir / "bin"

    @property
    def executable_path(self) -> Path:
        return self.target_dir / self.executable

    @property
    def module_dir(self) -> Optional[Path]:
        if not self.module_path_template:
            return None
        return self.target_dir / self.module_path_template.format(
            version=self.version, series=self.series
        )

    @property
    def library_dir(self) -> Optional[Path]:
        if not self.library_subdir:
            return None
        return self.target_dir / self.library_subdir


class FetchPolicy(BaseModel):
    """Retry policy for artifact downloads."""
    max_attempts: int = Field(default=3, ge=1, description="Attempts before giving up")
    retry_delay_seconds: float = Field(default=2.0, ge=0.0, description="Delay between attempts")
    backoff: BackoffStrategy = Field(default=BackoffStrategy.FIXED, description="Delay growth")
    max_delay_seconds: float = Field(default=30.0, ge=0.0, description="Cap for exponential delays")
    jitter: float = Field(default=0.0, ge=0.0, le=1.0, description="Random fraction added to each delay")
    timeout_seconds: float = Field(default=60.0, gt=0.0, description="Per-attempt transfer timeout")
    chunk_size: int = Field(default=64 * 1024, gt=0, description="Read size while streaming")

    class Config:
        frozen = True

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        if self.backoff == BackoffStrategy.EXPONENTIAL:
            delay = min(self.retry_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)
        else:
            delay = self.retry_delay_seconds
        if self.jitter:
            delay += (rng or random).uniform(0, delay * self.jitter)
        return delay


class RunConfig(BaseModel):
    """Everything a provisioning run needs, resolved once at startup."""
    working_dir: Path = Field(..., description="Directory toolchains are installed under")
    cache_dir: Path = Field(..., description="Directory for source archives reused across runs")
    runtime: DependencySpec = Field(..., description="Binary-distribution runtime (JDK)")
    interpreter: DependencySpec = Field(..., description="Interpreter built from source")
    fetch: FetchPolicy = Field(default_factory=FetchPolicy)
    build_jobs: int = Field(default=1, ge=1, description="Parallel jobs for the compile step")
    build_timeout_seconds: Optional[float] = Field(default=3600.0, description="Timeout per build stage")
    verify_timeout_seconds: float = Field(default=30.0, gt=0.0, description="Timeout for version checks")
    keep_build_dir: bool = Field(default=False, description="Keep the scratch build tree after install")
    base_env: Dict[str, str] = Field(
        default_factory=dict,
        description="Pre-existing values of path-like variables"
    )
    build_env: Dict[str, str] = Field(
        default_factory=lambda: {"DEBIAN_FRONTEND": "noninteractive"},
        description="Extra environment for delegated commands"
    )

    class Config:
        frozen = True

    @validator('build_env')
    def validate_build_env(cls, v):
        env = dict(v)
        env.setdefault("DEBIAN_FRONTEND", "noninteractive")
        return env

    @property
    def state_dir(self) -> Path:
        return self.working_dir / ".provision"

    @property
    def scratch_dir(self) -> Path:
        return self.state_dir / "tmp"

    @property
    def build_dir(self) -> Path:
        return self.state_dir / "build"

    @property
    def descriptor_path(self) -> Path:
        return self.working_dir / ".profile.d" / "runtime-env.sh"
