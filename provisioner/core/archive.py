"""
Archive extraction with leading path component stripping.
"""

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional

from .exceptions import ExtractionError


logger = logging.getLogger(__name__)


def _strip(name: str, strip_components: int) -> Optional[str]:
    """Drop leading components from an archive member name.

    Returns None for members that disappear entirely (the stripped top-level
    directory itself). Rejects absolute names and parent references.
    """
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise ExtractionError(f"Unsafe archive member: {name}")
    parts = [p for p in path.parts if p not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    return "/".join(parts[strip_components:])


def is_archive(path: Path) -> bool:
    """True if ``path`` is a readable tar or zip archive."""
    path = Path(path)
    if not path.is_file():
        return False
    try:
        return tarfile.is_tarfile(path) or zipfile.is_zipfile(path)
    except OSError:
        return False


def extract_archive(archive: Path, destination: Path, strip_components: int = 1,
                    dependency: Optional[str] = None) -> int:
    """
    Extract a tar or zip archive into ``destination``.

    Args:
        archive: Archive file
        destination: Existing directory to extract into
        strip_components: Leading path components removed from every member
        dependency: Name used in error messages

    Returns:
        Number of members written

    Raises:
        ExtractionError: If the archive is missing, corrupt, unsupported,
            empty after stripping, or cannot be written out
    """
    archive = Path(archive)
    destination = Path(destination)

    if not archive.is_file():
        raise ExtractionError(f"Archive not found: {archive}", dependency=dependency)
    if not destination.is_dir():
        raise ExtractionError(f"Destination is not a directory: {destination}", dependency=dependency)

    try:
        if tarfile.is_tarfile(archive):
            count = _extract_tar(archive, destination, strip_components)
        elif zipfile.is_zipfile(archive):
            count = _extract_zip(archive, destination, strip_components)
        else:
            raise ExtractionError(f"Unsupported archive format: {archive}", dependency=dependency)
    except ExtractionError as e:
        if e.dependency is None:
            raise ExtractionError(e.detail, dependency=dependency) from e
        raise
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as e:
        raise ExtractionError(f"Failed to extract {archive.name}: {e}", dependency=dependency) from e

    if count == 0:
        raise ExtractionError(f"Archive {archive.name} has no content below its top-level directory",
                              dependency=dependency)

    logger.debug(f"Extracted {count} members from {archive} into {destination}")
    return count


def _extract_tar(archive: Path, destination: Path, strip_components: int) -> int:
    with tarfile.open(archive, "r:*") as tar:
        members: List[tarfile.TarInfo] = []
        for member in tar.getmembers():
            name = _strip(member.name, strip_components)
            if name is None:
                continue
            member.name = name
            if member.islnk():
                linkname = _strip(member.linkname, strip_components)
                if linkname is None:
                    raise ExtractionError(f"Hard link to stripped directory: {member.linkname}")
                member.linkname = linkname
            members.append(member)

        if hasattr(tarfile, "data_filter"):
            tar.extractall(destination, members=members, filter="data")
        else:
            tar.extractall(destination, members=members)
    return len(members)


def _extract_zip(archive: Path, destination: Path, strip_components: int) -> int:
    root = destination.resolve()
    count = 0
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            name = _strip(info.filename, strip_components)
            if name is None:
                continue
            target = (destination / name).resolve()
            if root != target and root not in target.parents:
                raise ExtractionError(f"Unsafe archive member: {info.filename}")
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    target.chmod(mode)
            count += 1
    return count
