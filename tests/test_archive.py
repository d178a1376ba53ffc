"""
Tests for archive extraction.
"""

import io
import os
import tarfile

import pytest

from provisioner.core.archive import extract_archive, is_archive
from provisioner.core.exceptions import ExtractionError

from conftest import make_tarball, make_zip


@pytest.fixture
def dest(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


def write(tmp_path, name, data):
    path = tmp_path / name
    path.write_bytes(data)
    return path


class TestExtractArchive:

    @pytest.mark.parametrize("compression", ["gz", "bz2", "xz"])
    def test_strips_top_level_directory(self, tmp_path, dest, compression):
        archive = write(tmp_path, "a.tar", make_tarball(
            {"bin/tool": b"#!/bin/sh\n", "lib/libtool.so": b"x"}, compression=compression))

        count = extract_archive(archive, dest)

        assert count == 2
        assert (dest / "bin" / "tool").read_bytes() == b"#!/bin/sh\n"
        assert (dest / "lib" / "libtool.so").exists()
        assert not (dest / "pkg-1.0").exists()

    def test_preserves_executable_bit(self, tmp_path, dest):
        archive = write(tmp_path, "a.tgz", make_tarball({"bin/tool": b"x"}, modes={"bin/tool": 0o755}))

        extract_archive(archive, dest)

        assert os.access(dest / "bin" / "tool", os.X_OK)

    def test_zip_archives(self, tmp_path, dest):
        archive = write(tmp_path, "a.zip", make_zip({"bin/tool.exe": b"MZ", "README": b"hi"}))

        assert extract_archive(archive, dest) == 2
        assert (dest / "bin" / "tool.exe").read_bytes() == b"MZ"

    def test_extracting_twice_gives_same_layout(self, tmp_path, dest):
        archive = write(tmp_path, "a.tgz", make_tarball({"bin/tool": b"x", "lib/a": b"y"}))

        extract_archive(archive, dest)
        first = sorted(str(p.relative_to(dest)) for p in dest.rglob("*"))
        extract_archive(archive, dest)
        second = sorted(str(p.relative_to(dest)) for p in dest.rglob("*"))

        assert first == second

    def test_corrupt_archive(self, tmp_path, dest):
        data = make_tarball({"bin/tool": b"x" * 10000})
        archive = write(tmp_path, "a.tgz", data[: len(data) // 2])

        with pytest.raises(ExtractionError) as excinfo:
            extract_archive(archive, dest, dependency="jdk")

        assert excinfo.value.stage == "extract"
        assert excinfo.value.dependency == "jdk"

    def test_unsupported_format(self, tmp_path, dest):
        archive = write(tmp_path, "a.rar", b"Rar!\x1a\x07\x00 not really")

        with pytest.raises(ExtractionError, match="Unsupported archive format"):
            extract_archive(archive, dest)

    def test_missing_archive(self, tmp_path, dest):
        with pytest.raises(ExtractionError, match="not found"):
            extract_archive(tmp_path / "missing.tgz", dest)

    def test_archive_without_content_below_top_level(self, tmp_path, dest):
        archive = write(tmp_path, "a.tgz", make_tarball({}))

        with pytest.raises(ExtractionError, match="no content"):
            extract_archive(archive, dest)

    def test_rejects_parent_references(self, tmp_path, dest):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tar:
            info = tarfile.TarInfo("pkg/../../escape")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))
        archive = write(tmp_path, "evil.tgz", buf.getvalue())

        with pytest.raises(ExtractionError, match="Unsafe"):
            extract_archive(archive, dest)
        assert not (tmp_path / "escape").exists()


class TestIsArchive:

    def test_detects_archives(self, tmp_path):
        assert is_archive(write(tmp_path, "a.tgz", make_tarball({"f": b"x"})))
        assert is_archive(write(tmp_path, "a.zip", make_zip({"f": b"x"})))

    def test_rejects_other_files(self, tmp_path):
        assert not is_archive(write(tmp_path, "a.txt", b"plain text"))
        assert not is_archive(tmp_path / "missing.tgz")
