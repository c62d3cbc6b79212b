"""Tests for PackageStore — per-arch layout, atomic install, reclaim, verify."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from auroradeps.core.archive import unpack_tgz
from auroradeps.core.artifact_store import ARTIFACT_RECORD, KeyedLock, PackageStore
from auroradeps.core.errors import StoreIOError
from auroradeps.core.hasher import sha256_hex


def _install(store: PackageStore, tgz, name: str, version: str, arch: str, **kwargs):
    data = tgz({f"include/{name}.h": b"//\n", f"lib/lib{name}.so": b"\x7fELF"})
    with store.locked(name, version, arch):
        return store.install(name, version, arch, data, unpack_tgz, **kwargs), data


class TestPackageStore:
    def test_layout_paths(self, store: PackageStore):
        assert store.package_root("fmt", "10.2.1", "armv8") == store.root / "armv8/packages/fmt/10.2.1"
        assert store.archive_path("fmt", "10.2.1", "armv8").name == "fmt-10.2.1.tgz"
        assert store.descriptor_path("fmt", "x86_64") == store.root / "x86_64/pkgconfig/fmt.pc"

    def test_install_records_artifact(self, store: PackageStore, tgz):
        artifact, data = _install(store, tgz, "fmt", "10.2.1", "armv8")

        assert artifact.key == ("fmt", "10.2.1", "armv8")
        assert artifact.unpack_root == "thirdparty/aurora/armv8/packages/fmt/10.2.1"
        assert artifact.archive_sha256 == sha256_hex(data)
        root = store.resolve(artifact.unpack_root)
        assert (root / "include" / "fmt.h").is_file()
        assert (root / ARTIFACT_RECORD).is_file()
        assert store.resolve(artifact.archive_location).read_bytes() == data
        assert store.artifact_for("fmt", "10.2.1", "armv8") == artifact

    def test_arches_are_separate_trees(self, store: PackageStore, tgz):
        _install(store, tgz, "fmt", "10.2.1", "armv8")
        _install(store, tgz, "fmt", "10.2.1", "x86_64")

        assert store.arches() == ["armv8", "x86_64"]
        assert store.has("fmt", "10.2.1", "armv8")
        assert not store.has("fmt", "10.2.1", "armv7")
        assert [a.arch for a in store.installed()] == ["armv8", "x86_64"]
        assert [a.arch for a in store.installed("x86_64")] == ["x86_64"]

    def test_failed_unpack_leaves_nothing_behind(self, store: PackageStore):
        def broken(data: bytes, destination: Path) -> Path:
            (destination / "partial.h").write_text("//", encoding="utf-8")
            raise OSError("disk full")

        with pytest.raises(StoreIOError, match="disk full"):
            with store.locked("fmt", "10.2.1", "armv8"):
                store.install("fmt", "10.2.1", "armv8", b"data", broken)

        assert not store.package_root("fmt", "10.2.1", "armv8").exists()
        parent = store.package_root("fmt", "10.2.1", "armv8").parent
        assert list(parent.iterdir()) == []
        assert store.installed() == []

    def test_corrupt_archive_is_store_error(self, store: PackageStore):
        with pytest.raises(StoreIOError):
            with store.locked("fmt", "1.0", "armv8"):
                store.install("fmt", "1.0", "armv8", b"not a tarball", unpack_tgz)

    def test_remove(self, store: PackageStore, tgz):
        _install(store, tgz, "fmt", "10.2.1", "armv8")
        store.remove("fmt", "10.2.1", "armv8")
        assert not store.has("fmt", "10.2.1", "armv8")
        assert not store.archive_path("fmt", "10.2.1", "armv8").exists()
        assert not (store.root / "armv8/packages/fmt").exists()

    def test_reclaim_keeps_requested_versions(self, store: PackageStore, tgz):
        _install(store, tgz, "fmt", "10.2.1", "armv8")
        _install(store, tgz, "fmt", "9.1.0", "armv8")
        _install(store, tgz, "zlib", "1.3.1", "armv8")
        _install(store, tgz, "zlib", "1.3.1", "x86_64")

        removed = store.reclaim({("fmt", "10.2.1")})

        assert sorted(a.key for a in removed) == [
            ("fmt", "9.1.0", "armv8"),
            ("zlib", "1.3.1", "armv8"),
            ("zlib", "1.3.1", "x86_64"),
        ]
        assert [a.key for a in store.installed()] == [("fmt", "10.2.1", "armv8")]

    def test_stale_descriptors(self, store: PackageStore):
        pc = store.pkgconfig_dir("armv8")
        pc.mkdir(parents=True)
        (pc / "fmt.pc").write_text("", encoding="utf-8")
        (pc / "zlib.pc").write_text("", encoding="utf-8")
        assert store.stale_descriptors("armv8", {"fmt"}) == [pc / "zlib.pc"]
        assert store.stale_descriptors("armv7", set()) == []

    def test_verify_detects_tampering(self, store: PackageStore, tgz):
        artifact, _ = _install(store, tgz, "fmt", "10.2.1", "armv8")
        assert store.verify(artifact) == []

        store.resolve(artifact.archive_location).write_bytes(b"tampered")
        problems = store.verify(artifact)
        assert len(problems) == 1
        assert "checksum mismatch" in problems[0]

    def test_verify_detects_missing_tree(self, store: PackageStore, tgz):
        artifact, _ = _install(store, tgz, "fmt", "10.2.1", "armv8")
        store.remove("fmt", "10.2.1", "armv8")
        problems = store.verify(artifact)
        assert any("unpack root" in p for p in problems)
        assert any("archive" in p and "missing" in p for p in problems)

    def test_remove_all(self, store: PackageStore, tgz):
        _install(store, tgz, "fmt", "10.2.1", "armv8")
        store.remove_all()
        assert not store.root.exists()
        assert store.arches() == []


class TestKeyedLock:
    def _acquire_in_thread(self, lock: KeyedLock, *key: str) -> tuple[threading.Thread, threading.Event]:
        acquired = threading.Event()

        def worker():
            with lock.hold(*key):
                acquired.set()

        thread = threading.Thread(target=worker)
        thread.start()
        return thread, acquired

    def test_different_keys_do_not_block(self, tmp_path: Path):
        lock = KeyedLock(tmp_path / ".locks")
        with lock.hold("fmt", "10.2.1", "armv8"):
            thread, acquired = self._acquire_in_thread(lock, "zlib", "1.3.1", "armv8")
            assert acquired.wait(timeout=5)
        thread.join(timeout=5)

    def test_same_key_waits_for_release(self, tmp_path: Path):
        lock = KeyedLock(tmp_path / ".locks")
        with lock.hold("fmt", "10.2.1", "armv8"):
            thread, acquired = self._acquire_in_thread(lock, "fmt", "10.2.1", "armv8")
            assert not acquired.wait(timeout=0.2)
        assert acquired.wait(timeout=5)
        thread.join(timeout=5)
