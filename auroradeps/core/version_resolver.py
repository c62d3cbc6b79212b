"""Version resolution — match a requested spec against published versions.

Ordering is semantic: ``packaging.version.Version`` when a string parses,
otherwise a natural tuple of numeric and text components. Versions never
compare lexically, so ``1.10.0`` sorts above ``1.9.3``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from packaging.version import InvalidVersion, Version

from auroradeps.core.errors import (
    ResolutionError,
    UnknownFamilyError,
    VersionNotFoundError,
)
from auroradeps.core.interfaces import MetadataProvider
from auroradeps.models.packages import UNRESOLVED_VERSION, SpecKind, VersionSpec

logger = logging.getLogger(__name__)

_FAMILY_PREFIX = "family:"
# Conan version-range placeholders reported by remotes (e.g. 1.2.Z, 1.Y.Z).
_PLACEHOLDER = re.compile(r"^[XYZxyz*]$")
_NATURAL_SPLIT = re.compile(r"(\d+)")


def parse_spec(raw: str | None) -> VersionSpec:
    """Parse a requested version string.

    Examples
    --------
    >>> parse_spec("1.18.*").kind
    <SpecKind.WILDCARD: 'wildcard'>
    >>> parse_spec("1.18.*").prefix
    ('1', '18')
    >>> parse_spec(None).kind
    <SpecKind.LATEST: 'latest'>
    """
    text = (raw or "").strip()
    if not text or text.lower() == "latest":
        return VersionSpec(raw=raw, kind=SpecKind.LATEST)

    if text.startswith(_FAMILY_PREFIX):
        tag = text[len(_FAMILY_PREFIX):].strip()
        if not tag:
            raise ResolutionError(f"Empty family tag in version spec '{text}'")
        return VersionSpec(raw=text, kind=SpecKind.FAMILY, family=tag)

    components = text.split(".")
    if _PLACEHOLDER.match(components[-1]):
        fixed: list[str] = []
        for component in components:
            if _PLACEHOLDER.match(component):
                break
            fixed.append(component)
        if not fixed:
            return VersionSpec(raw=text, kind=SpecKind.LATEST)
        return VersionSpec(raw=text, kind=SpecKind.WILDCARD, prefix=tuple(fixed))

    return VersionSpec(raw=text, kind=SpecKind.EXACT)


def version_key(version: str) -> tuple[Any, ...]:
    """Sort key giving semantic version order."""
    try:
        return (1, Version(version))
    except InvalidVersion:
        parts = _NATURAL_SPLIT.split(version)
        natural = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in parts
            if part
        )
        return (0, natural)


def matches_prefix(version: str, prefix: tuple[str, ...]) -> bool:
    """Return True if the leading dot components of *version* equal *prefix*."""
    components = version.split(".")
    if len(components) <= len(prefix):
        return False
    return tuple(components[: len(prefix)]) == prefix


def highest(versions: list[str]) -> str | None:
    """Return the highest version of the list, or None when it is empty."""
    if not versions:
        return None
    return max(versions, key=version_key)


def satisfies(version: str, spec: VersionSpec) -> bool:
    """Return True if *version* is acceptable for *spec* without a lookup.

    Family specs can only be checked against the provider, so they never
    satisfy a pin on their own.
    """
    if spec.kind is SpecKind.EXACT:
        return version == spec.raw
    if spec.kind is SpecKind.WILDCARD:
        return matches_prefix(version, spec.prefix)
    return spec.kind is SpecKind.LATEST


class VersionResolver:
    """Selects concrete versions for version specs.

    Parameters
    ----------
    provider:
        Supplies version lists and family membership.
    """

    def __init__(self, provider: MetadataProvider) -> None:
        self._provider = provider

    def resolve(self, name: str, spec: VersionSpec, available: list[str]) -> str:
        """Pick the version of *name* that *spec* selects from *available*."""
        if spec.kind is SpecKind.EXACT:
            if spec.raw in available:
                return spec.raw
            raise VersionNotFoundError(name, str(spec), available)

        if spec.kind is SpecKind.WILDCARD:
            candidates = [v for v in available if matches_prefix(v, spec.prefix)]
        elif spec.kind is SpecKind.FAMILY:
            try:
                members = self._provider.list_family_members(spec.family)
            except UnknownFamilyError as exc:
                raise UnknownFamilyError(spec.family, name) from exc
            candidates = [v for v in members if v in available] if available else list(members)
        else:
            candidates = list(available)

        chosen = highest(candidates)
        if chosen is None:
            raise VersionNotFoundError(name, str(spec), available)
        logger.debug("Resolved %s %s -> %s", name, spec, chosen)
        return chosen

    def resolve_remote(self, name: str, spec: VersionSpec) -> str:
        """Fetch the version list of *name* and resolve *spec* against it."""
        return self.resolve(name, spec, self._provider.list_versions(name))

    def try_resolve(
        self, name: str, spec: VersionSpec, available: list[str]
    ) -> tuple[str, str]:
        """Like ``resolve`` but returns ``(UNRESOLVED_VERSION, reason)`` on failure."""
        try:
            return self.resolve(name, spec, available), ""
        except ResolutionError as exc:
            return UNRESOLVED_VERSION, str(exc)
