"""Tests for project layout discovery and archive unpacking."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from auroradeps.core.archive import unpack_tgz
from auroradeps.core.errors import ProjectLayoutError, StoreIOError
from auroradeps.core.hasher import sha256_file, sha256_hex
from auroradeps.core.project import ProjectLayout


class TestProjectLayout:
    def test_discover(self, project: Path):
        layout = ProjectLayout.discover(project)
        assert layout.root == project.resolve()
        assert layout.cmake_file.name == "CMakeLists.txt"
        assert layout.spec_file.name == "ru.auroraos.TestApp.spec"
        assert layout.store_dir == project.resolve() / "thirdparty/aurora"
        assert layout.relative(layout.spec_file) == "rpm/ru.auroraos.TestApp.spec"

    def test_custom_store_root(self, project: Path):
        layout = ProjectLayout.discover(project, "vendor/aurora")
        assert layout.store_dir.name == "aurora"
        assert layout.store_dir.parent.name == "vendor"

    def test_missing_cmake(self, project: Path):
        (project / "CMakeLists.txt").unlink()
        with pytest.raises(ProjectLayoutError, match="CMakeLists.txt"):
            ProjectLayout.discover(project)

    def test_missing_spec(self, project: Path):
        (project / "rpm" / "ru.auroraos.TestApp.spec").unlink()
        with pytest.raises(ProjectLayoutError, match="No .spec"):
            ProjectLayout.discover(project)

    def test_ambiguous_spec(self, project: Path):
        (project / "rpm" / "other.spec").write_text("Name: other\n", encoding="utf-8")
        with pytest.raises(ProjectLayoutError, match="exactly one"):
            ProjectLayout.discover(project)


class TestUnpack:
    def test_unpacks_tree(self, tgz, tmp_path: Path):
        data = tgz({"include/z.h": b"//", "lib/libz.so": b"\x7fELF"})
        root = unpack_tgz(data, tmp_path / "out")
        assert (root / "include/z.h").read_bytes() == b"//"
        assert (root / "lib/libz.so").is_file()

    def test_rejects_path_traversal(self, tmp_path: Path):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            info = tarfile.TarInfo("../escape.txt")
            info.size = 2
            archive.addfile(info, io.BytesIO(b"hi"))
        with pytest.raises(StoreIOError):
            unpack_tgz(buffer.getvalue(), tmp_path / "out")
        assert not (tmp_path / "escape.txt").exists()

    def test_garbage(self, tmp_path: Path):
        with pytest.raises(StoreIOError):
            unpack_tgz(b"not a tarball", tmp_path / "out")


class TestHasher:
    def test_file_and_bytes_agree(self, tmp_path: Path):
        path = tmp_path / "blob"
        path.write_bytes(b"auroradeps" * 1000)
        assert sha256_file(path) == sha256_hex(b"auroradeps" * 1000)
