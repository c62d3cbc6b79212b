"""Remote metadata provider: developer portal plus a Conan v2 REST remote.

Versions come from the portal's package page. Everything that is per
package revision comes from the Conan remote:

    GET {remote}/v2/conans/{name}/{version}/{user}/_/latest
        -> {"revision": rrev}
    GET {remote}/v2/conans/{name}/{version}/{user}/_/revisions/{rrev}/search
        -> {package_id: {"settings": {"arch": ...}, "requires": [...]}}
    GET .../revisions/{rrev}/packages/{package_id}/latest
        -> {"revision": prev}
    GET .../packages/{package_id}/revisions/{prev}/files/conan_package.tgz

A binary without an ``arch`` setting is the header-only variant.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Any
from urllib.parse import quote

from auroradeps.core.archive import unpack_tgz
from auroradeps.core.artifact_selector import normalize_arch
from auroradeps.core.errors import (
    MissingArchitectureArtifactError,
    RemoteError,
    UnsupportedArchitectureError,
)
from auroradeps.core.interfaces import FamilyStrategy, StaticFamilies
from auroradeps.models.packages import HEADER_ONLY_VARIANT, Requirement
from auroradeps.remote.http import HttpClient
from auroradeps.remote.portal import parse_versions_html

logger = logging.getLogger(__name__)

PACKAGE_FILE = "conan_package.tgz"


def parse_requirement(raw: str) -> Requirement | None:
    """Turn a Conan requirement reference into a ``Requirement``.

    User/channel, recipe revision and package id are dropped; Conan's
    ``X.Y.Z`` placeholders are kept so they parse as wildcards.

    Examples
    --------
    >>> parse_requirement("zlib/1.2.Z@aurora#a1b2:c3d4")
    Requirement(name='zlib', spec='1.2.Z')
    >>> parse_requirement("garbage") is None
    True
    """
    ref = raw.strip().split(":", 1)[0].split("#", 1)[0].split("@", 1)[0]
    name, sep, version = ref.partition("/")
    if not sep or not name or not version:
        return None
    return Requirement(name=name, spec=version)


class RemoteMetadataProvider:
    """``MetadataProvider`` and ``ArchiveFetcher`` backed by the network.

    Parameters
    ----------
    http:
        Shared HTTP client with retries.
    portal_url:
        Developer portal base URL.
    remote_url:
        Conan v2 remote base URL. Required for anything beyond versions.
    user:
        Conan reference user (``name/version@user``).
    families:
        Family tag strategy.
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        portal_url: str = "https://developer.auroraos.ru",
        remote_url: str = "",
        user: str = "aurora",
        families: FamilyStrategy | None = None,
    ) -> None:
        self._http = http
        self._portal_url = portal_url.rstrip("/")
        self._remote_url = remote_url.rstrip("/")
        self._user = user
        self._families = families or StaticFamilies()
        self._index: dict[tuple[str, str], tuple[str, dict[str, Any]]] = {}
        self._index_lock = Lock()

    # ------------------------------------------------------------------
    # MetadataProvider
    # ------------------------------------------------------------------

    def list_versions(self, name: str) -> list[str]:
        url = f"{self._portal_url}/conan/{quote(name, safe='')}"
        response = self._http.get(url)
        if response.status_code == 404:
            logger.warning("Package '%s' is not published on %s", name, self._portal_url)
            return []
        if not response.ok:
            raise RemoteError(f"Cannot list versions of '{name}': HTTP {response.status_code}")
        try:
            versions = parse_versions_html(response.text)
        except RemoteError as exc:
            raise RemoteError(f"Cannot list versions of '{name}': {exc}") from exc
        logger.debug("Versions of %s: %s", name, ", ".join(versions))
        return versions

    def list_family_members(self, family: str) -> list[str]:
        return self._families.members(family)

    def list_dependencies(self, name: str, version: str) -> list[Requirement]:
        _, binaries = self._binaries(name, version)
        seen: dict[str, Requirement] = {}
        for info in binaries.values():
            for raw in info.get("requires") or []:
                requirement = parse_requirement(str(raw))
                if requirement is None:
                    logger.debug("Ignoring unparsable requirement %r of %s/%s", raw, name, version)
                    continue
                seen.setdefault(requirement.name, requirement)
        return [seen[key] for key in sorted(seen)]

    def list_architecture_variants(self, name: str, version: str) -> set[str]:
        _, binaries = self._binaries(name, version)
        return {_variant_of(info) for info in binaries.values()}

    # ------------------------------------------------------------------
    # ArchiveFetcher
    # ------------------------------------------------------------------

    def fetch(self, name: str, version: str, arch: str) -> bytes:
        rrev, binaries = self._binaries(name, version)
        package_id = None
        for candidate, info in sorted(binaries.items()):
            if _normalized(_variant_of(info)) == arch:
                package_id = candidate
                break
        if package_id is None:
            offered = sorted({_variant_of(info) for info in binaries.values()})
            raise MissingArchitectureArtifactError(name, version, arch, offered)

        base = f"{self._recipe_url(name, version)}/revisions/{rrev}/packages/{package_id}"
        latest = self._http.get_json(f"{base}/latest", context=f"{name}/{version} [{arch}]")
        prev = latest.get("revision") if isinstance(latest, dict) else None
        if not prev:
            raise RemoteError(f"{name}/{version} [{arch}]: remote returned no package revision")
        logger.info("Downloading %s/%s [%s]", name, version, arch)
        return self._http.get_bytes(
            f"{base}/revisions/{prev}/files/{PACKAGE_FILE}",
            context=f"{name}/{version} [{arch}]",
        )

    def unpack(self, data: bytes, destination: Path) -> Path:
        return unpack_tgz(data, destination)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recipe_url(self, name: str, version: str) -> str:
        if not self._remote_url:
            raise RemoteError(
                "No Conan remote configured. Set AURORADEPS_REMOTE_URL to the remote base URL."
            )
        return (
            f"{self._remote_url}/v2/conans/{quote(name, safe='')}/"
            f"{quote(version, safe='')}/{self._user}/_"
        )

    def _binaries(self, name: str, version: str) -> tuple[str, dict[str, Any]]:
        key = (name, version)
        with self._index_lock:
            cached = self._index.get(key)
        if cached is not None:
            return cached

        recipe = self._recipe_url(name, version)
        context = f"{name}/{version}"
        latest = self._http.get_json(f"{recipe}/latest", context=context)
        rrev = latest.get("revision") if isinstance(latest, dict) else None
        if not rrev:
            raise RemoteError(f"{context}: remote returned no recipe revision")
        search = self._http.get_json(f"{recipe}/revisions/{rrev}/search", context=context)
        if not isinstance(search, dict):
            raise RemoteError(f"{context}: unexpected package search response")

        result = (rrev, search)
        with self._index_lock:
            self._index[key] = result
        return result


def _variant_of(info: dict[str, Any]) -> str:
    settings = info.get("settings") or {}
    arch = settings.get("arch") if isinstance(settings, dict) else None
    return str(arch) if arch else HEADER_ONLY_VARIANT


def _normalized(variant: str) -> str:
    try:
        return normalize_arch(variant)
    except UnsupportedArchitectureError:
        return variant
