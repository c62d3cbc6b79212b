"""Collaborator Protocols the core depends on.

The core never talks to the network or to an external package manager
directly. It is handed objects satisfying these Protocols:

1. **MetadataProvider** — versions, dependencies and architecture variants.
2. **ArchiveFetcher** — archive bytes and unpacking.
3. **FamilyStrategy** — how a family tag maps to a version set.
4. **EnvironmentRunner** — managed mode only; runs the external tool.

``RemoteMetadataProvider`` implements the first two against the developer
portal and a Conan v2 remote. Tests use in-memory fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from auroradeps.core.errors import UnknownFamilyError
from auroradeps.models.packages import Requirement


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class MetadataProvider(Protocol):
    """Remote package metadata."""

    def list_versions(self, name: str) -> list[str]:
        """Return every published version of *name*, newest first if known."""
        ...

    def list_family_members(self, family: str) -> list[str]:
        """Return the versions belonging to a family tag.

        Raises ``UnknownFamilyError`` when the tag has no mapping.
        """
        ...

    def list_dependencies(self, name: str, version: str) -> list[Requirement]:
        """Return the immediate requirements of ``name/version``."""
        ...

    def list_architecture_variants(self, name: str, version: str) -> set[str]:
        """Return the architectures (or ``"package"`` for header-only) offered."""
        ...


@runtime_checkable
class ArchiveFetcher(Protocol):
    """Downloads and unpacks package archives."""

    def fetch(self, name: str, version: str, arch: str) -> bytes:
        """Return the archive bytes of one variant."""
        ...

    def unpack(self, data: bytes, destination: Path) -> Path:
        """Unpack *data* into *destination* and return the unpack root."""
        ...


@runtime_checkable
class FamilyStrategy(Protocol):
    """Resolves a family tag to its member versions."""

    def members(self, family: str) -> list[str]:
        ...


@runtime_checkable
class EnvironmentRunner(Protocol):
    """Runs the external resolution tool for managed mode."""

    def graph_info(self, project_root: Path) -> dict[str, Any]:
        """Return the tool's dependency graph as parsed JSON."""
        ...


# ---------------------------------------------------------------------------
# Default family strategy
# ---------------------------------------------------------------------------


class StaticFamilies:
    """Family tags backed by a fixed mapping (usually from configuration).

    Examples
    --------
    >>> families = StaticFamilies({"lts": ["1.16.0", "1.18.1"]})
    >>> families.members("lts")
    ['1.16.0', '1.18.1']
    """

    def __init__(self, mapping: dict[str, list[str]] | None = None) -> None:
        self._mapping = {tag: list(versions) for tag, versions in (mapping or {}).items()}

    def members(self, family: str) -> list[str]:
        if family not in self._mapping:
            raise UnknownFamilyError(family)
        return list(self._mapping[family])
