"""Shared test fixtures for auroradeps."""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from auroradeps.core.archive import unpack_tgz
from auroradeps.core.artifact_store import PackageStore
from auroradeps.core.interfaces import StaticFamilies
from auroradeps.core.orchestrator import Orchestrator
from auroradeps.core.version_resolver import version_key
from auroradeps.models.packages import HEADER_ONLY_VARIANT, Requirement

ALL_ARCHES = ("armv7", "armv8", "x86_64")

CMAKE_TEXT = """\
cmake_minimum_required(VERSION 3.10)

project(ru.auroraos.TestApp CXX)

add_executable(${PROJECT_NAME} src/main.cpp)
"""

SPEC_TEXT = """\
Name:       ru.auroraos.TestApp
Summary:    Test application
Version:    0.1
Release:    1
License:    BSD-3-Clause
Source0:    %{name}-%{version}.tar.bz2

BuildRequires:  pkgconfig(auroraapp)
BuildRequires:  cmake

%description
Test application.

%prep
%autosetup

%build
%cmake
%make_build

%install
%make_install

%files
%{_bindir}/%{name}
"""


def make_tgz(files: dict[str, bytes]) -> bytes:
    """Build a gzip-compressed tar archive in memory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, content in sorted(files.items()):
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeRegistry:
    """In-memory ``MetadataProvider`` and ``ArchiveFetcher``.

    ``publish`` registers a package version with its requirements and the
    variants it is built for. ``fetch`` returns a real .tgz with a header
    under ``include/`` and one ``lib/lib<name>.so`` per library.
    """

    def __init__(self, families: dict[str, list[str]] | None = None) -> None:
        self.packages: dict[str, dict[str, dict[str, Any]]] = {}
        self.families = StaticFamilies(families or {})
        self.fetches: list[tuple[str, str, str]] = []

    def publish(
        self,
        name: str,
        version: str,
        requires: list[tuple[str, str | None]] | None = None,
        *,
        arches: tuple[str, ...] = ALL_ARCHES,
        header_only: bool = False,
        libs: list[str] | None = None,
    ) -> None:
        self.packages.setdefault(name, {})[version] = {
            "requires": [Requirement(name=n, spec=s) for n, s in (requires or [])],
            "variants": {HEADER_ONLY_VARIANT} if header_only else set(arches),
            "libs": [] if header_only else (libs if libs is not None else [name]),
        }

    # MetadataProvider

    def list_versions(self, name: str) -> list[str]:
        return sorted(self.packages.get(name, {}), key=version_key, reverse=True)

    def list_family_members(self, family: str) -> list[str]:
        return self.families.members(family)

    def list_dependencies(self, name: str, version: str) -> list[Requirement]:
        return list(self.packages[name][version]["requires"])

    def list_architecture_variants(self, name: str, version: str) -> set[str]:
        return set(self.packages[name][version]["variants"])

    # ArchiveFetcher

    def fetch(self, name: str, version: str, arch: str) -> bytes:
        self.fetches.append((name, version, arch))
        entry = self.packages[name][version]
        files = {f"include/{name}/{name}.h": f"// {name} {version}\n".encode()}
        for lib in entry["libs"]:
            files[f"lib/lib{lib}.so"] = b"\x7fELF" + arch.encode()
        return make_tgz(files)

    def unpack(self, data: bytes, destination: Path) -> Path:
        return unpack_tgz(data, destination)


class FakeRunner:
    """``EnvironmentRunner`` returning a canned ``conan graph info`` payload."""

    def __init__(self, libs: list[str] | None = None, error: Exception | None = None) -> None:
        self.libs = libs or []
        self.error = error
        self.calls: list[Path] = []

    def graph_info(self, project_root: Path) -> dict[str, Any]:
        self.calls.append(Path(project_root))
        if self.error is not None:
            raise self.error
        return {
            "graph": {
                "nodes": {
                    "0": {"ref": "conanfile", "cpp_info": {"root": {"libs": []}}},
                    "1": {"ref": "dep", "cpp_info": {"root": {"libs": list(self.libs)}}},
                }
            }
        }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> FakeRegistry:
    """Provide an empty fake remote."""
    return FakeRegistry(families={"lts": ["1.16.0", "1.18.1"]})


@pytest.fixture
def runner() -> FakeRunner:
    """Provide a fake Conan runner reporting the fmt library."""
    return FakeRunner(libs=["fmt"])


@pytest.fixture
def tgz() -> Callable[[dict[str, bytes]], bytes]:
    """Factory fixture: build .tgz bytes from a ``{path: content}`` mapping."""
    return make_tgz


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Provide an uninitialized Aurora OS application tree."""
    root = tmp_path / "app"
    (root / "rpm").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "CMakeLists.txt").write_text(CMAKE_TEXT, encoding="utf-8")
    (root / "rpm" / "ru.auroraos.TestApp.spec").write_text(SPEC_TEXT, encoding="utf-8")
    (root / "src" / "main.cpp").write_text("int main() { return 0; }\n", encoding="utf-8")
    return root


@pytest.fixture
def store(tmp_path: Path) -> PackageStore:
    """Provide an empty package store rooted under a temp project."""
    return PackageStore(tmp_path / "thirdparty" / "aurora", project_root=tmp_path)


@pytest.fixture
def make_orchestrator(
    project: Path, registry: FakeRegistry, runner: FakeRunner
) -> Callable[..., Orchestrator]:
    """Factory fixture: an Orchestrator over the fake remote and project."""

    def _factory(**overrides: Any) -> Orchestrator:
        options: dict[str, Any] = {
            "provider": registry,
            "fetcher": registry,
            "runner": runner,
            "target_arch": "armv8",
            "max_workers": 2,
        }
        options.update(overrides)
        return Orchestrator(project, **options)

    return _factory
