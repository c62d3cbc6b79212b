"""Per-architecture package store.

Storage layout::

    {root}/
        manifest.lock.json
        .locks/{arch}-{name}-{version}.lock
        {arch}/
            archives/{name}-{version}.tgz          — archive cache slot
            packages/{name}/{version}/             — unpack root
                .auroradeps-artifact.json          — artifact record
            pkgconfig/{name}.pc                    — generated descriptors

Unpack roots are never shared across architectures. Installing the same
``(package, version, arch)`` twice is a no-op keyed by that identity.
Installation unpacks into a temporary sibling directory and moves it into
place only once it is complete, so a failure never leaves a partial tree.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from auroradeps.core.errors import StoreIOError
from auroradeps.core.hasher import sha256_file, sha256_hex
from auroradeps.models.packages import ArchitectureArtifact

logger = logging.getLogger(__name__)

ARTIFACT_RECORD = ".auroradeps-artifact.json"
_LOCK_DIR = ".locks"


class KeyedLock:
    """One lock per key: in-process mutex plus an advisory file lock.

    Different keys never block each other, so independent packages install
    concurrently while two installers of the same key are serialized, even
    across processes.
    """

    def __init__(self, lock_dir: Path) -> None:
        self._lock_dir = Path(lock_dir)
        self._guard = Lock()
        self._locks: dict[tuple[str, ...], Lock] = {}

    @contextmanager
    def hold(self, *key: str) -> Iterator[None]:
        with self._guard:
            local = self._locks.setdefault(key, Lock())
        with local:
            self._lock_dir.mkdir(parents=True, exist_ok=True)
            lock_path = self._lock_dir / ("-".join(key) + ".lock")
            with lock_path.open("a+", encoding="utf-8") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class PackageStore:
    """Project-local store of unpacked package artifacts.

    Parameters
    ----------
    root:
        Store directory, usually ``<project>/thirdparty/aurora``.
    project_root:
        Paths recorded in artifacts are relative to this directory.
    """

    def __init__(self, root: Path, project_root: Path | None = None) -> None:
        self._root = Path(root)
        self._project_root = Path(project_root) if project_root else self._root
        self._locks = KeyedLock(self._root / _LOCK_DIR)

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def arch_root(self, arch: str) -> Path:
        return self._root / arch

    def package_root(self, name: str, version: str, arch: str) -> Path:
        return self.arch_root(arch) / "packages" / name / version

    def archive_path(self, name: str, version: str, arch: str) -> Path:
        return self.arch_root(arch) / "archives" / f"{name}-{version}.tgz"

    def pkgconfig_dir(self, arch: str) -> Path:
        return self.arch_root(arch) / "pkgconfig"

    def descriptor_path(self, name: str, arch: str) -> Path:
        return self.pkgconfig_dir(arch) / f"{name}.pc"

    def relative(self, path: Path) -> str:
        """Render *path* relative to the project root, POSIX style."""
        try:
            return Path(path).relative_to(self._project_root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def resolve(self, recorded: str) -> Path:
        """Inverse of ``relative``."""
        path = Path(recorded)
        return path if path.is_absolute() else self._project_root / path

    def ensure_layout(self) -> None:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError(f"Cannot create store {self._root}: {exc}") from exc

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def artifact_for(self, name: str, version: str, arch: str) -> ArchitectureArtifact | None:
        """Return the recorded artifact for a key, or None if not installed."""
        record = self.package_root(name, version, arch) / ARTIFACT_RECORD
        if not record.is_file():
            return None
        try:
            return ArchitectureArtifact.model_validate_json(record.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable artifact record %s: %s", record, exc)
            return None

    def has(self, name: str, version: str, arch: str) -> bool:
        return self.artifact_for(name, version, arch) is not None

    def arches(self) -> list[str]:
        """Architectures that currently have a tree in the store."""
        if not self._root.is_dir():
            return []
        return sorted(
            p.name for p in self._root.iterdir()
            if p.is_dir() and not p.name.startswith(".") and (p / "packages").is_dir()
        )

    def installed(self, arch: str | None = None) -> list[ArchitectureArtifact]:
        """Scan the store for unpack roots, optionally for one arch."""
        found: list[ArchitectureArtifact] = []
        for a in [arch] if arch else self.arches():
            packages = self.arch_root(a) / "packages"
            if not packages.is_dir():
                continue
            for name_dir in sorted(packages.iterdir()):
                if not name_dir.is_dir() or name_dir.name.startswith("."):
                    continue
                for version_dir in sorted(name_dir.iterdir()):
                    if version_dir.name.startswith("."):
                        continue
                    artifact = self.artifact_for(name_dir.name, version_dir.name, a)
                    if artifact is not None:
                        found.append(artifact)
        return found

    # ------------------------------------------------------------------
    # Install / remove
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self, name: str, version: str, arch: str) -> Iterator[None]:
        """Serialize work on one ``(package, version, arch)`` key."""
        with self._locks.hold(arch, name, version):
            yield

    def install(
        self,
        name: str,
        version: str,
        arch: str,
        data: bytes,
        unpack: Callable[[bytes, Path], Path],
        *,
        header_only: bool = False,
    ) -> ArchitectureArtifact:
        """Cache *data* and unpack it as the artifact for a key.

        The caller must hold ``locked(name, version, arch)``.
        """
        final = self.package_root(name, version, arch)
        archive = self.archive_path(name, version, arch)
        staging = final.parent / f".tmp-{version}-{uuid.uuid4().hex[:8]}"
        try:
            archive.parent.mkdir(parents=True, exist_ok=True)
            tmp_archive = archive.with_name(f".{archive.name}.{uuid.uuid4().hex[:8]}")
            tmp_archive.write_bytes(data)
            os.replace(tmp_archive, archive)

            staging.mkdir(parents=True)
            unpack(data, staging)
            artifact = ArchitectureArtifact(
                package=name,
                version=version,
                arch=arch,
                header_only=header_only,
                archive_location=self.relative(archive),
                unpack_root=self.relative(final),
                archive_sha256=sha256_hex(data),
            )
            (staging / ARTIFACT_RECORD).write_text(
                artifact.model_dump_json(indent=2) + "\n", encoding="utf-8"
            )
            if final.exists():
                shutil.rmtree(final)
            os.replace(staging, final)
        except Exception as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise StoreIOError(
                f"Failed to install {name}/{version} for {arch}: {exc}"
            ) from exc

        logger.info(
            "Installed %s/%s for %s%s", name, version, arch,
            " (header-only)" if header_only else "",
        )
        return artifact

    def remove(self, name: str, version: str, arch: str) -> None:
        """Delete the unpack root and cached archive of a key."""
        root = self.package_root(name, version, arch)
        archive = self.archive_path(name, version, arch)
        try:
            if root.exists():
                shutil.rmtree(root)
            if archive.exists():
                archive.unlink()
            parent = root.parent
            if parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
        except OSError as exc:
            raise StoreIOError(f"Failed to remove {name}/{version} for {arch}: {exc}") from exc
        logger.info("Removed %s/%s for %s", name, version, arch)

    def reclaim(self, keep: set[tuple[str, str]]) -> list[ArchitectureArtifact]:
        """Delete every artifact whose ``(package, version)`` is not in *keep*.

        Returns the artifacts that were removed.
        """
        removed: list[ArchitectureArtifact] = []
        for artifact in self.installed():
            if (artifact.package, artifact.version) in keep:
                continue
            with self.locked(artifact.package, artifact.version, artifact.arch):
                self.remove(artifact.package, artifact.version, artifact.arch)
            removed.append(artifact)
        return removed

    def stale_descriptors(self, arch: str, keep: set[str]) -> list[Path]:
        """Descriptor files of packages that are not in *keep*."""
        directory = self.pkgconfig_dir(arch)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob("*.pc") if p.stem not in keep)

    def remove_all(self) -> None:
        """Delete the whole store directory."""
        if self._root.exists():
            try:
                shutil.rmtree(self._root)
            except OSError as exc:
                raise StoreIOError(f"Failed to delete store {self._root}: {exc}") from exc

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, artifact: ArchitectureArtifact) -> list[str]:
        """Re-check an artifact against disk. Returns problem descriptions."""
        problems: list[str] = []
        label = f"{artifact.package}/{artifact.version} [{artifact.arch}]"
        root = self.resolve(artifact.unpack_root)
        if not (root / ARTIFACT_RECORD).is_file():
            problems.append(f"{label}: unpack root {artifact.unpack_root} is missing")
        archive = self.resolve(artifact.archive_location)
        if not archive.is_file():
            problems.append(f"{label}: archive {artifact.archive_location} is missing")
        elif artifact.archive_sha256 and sha256_file(archive) != artifact.archive_sha256:
            problems.append(f"{label}: archive checksum mismatch")
        return problems
