"""Error taxonomy. Each family carries the CLI exit code it maps to.

- ``ResolutionError`` (exit 1): nothing was written.
- ``StoreError`` (exit 2): store, archive, manifest or build-file I/O.
- ``ModeError`` (exit 3): the command is not valid in the project's mode.
"""

from __future__ import annotations


class AurodepsError(RuntimeError):
    """Base class for every error the engine reports to the user."""

    exit_code: int = 1


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionError(AurodepsError):
    exit_code = 1


class VersionNotFoundError(ResolutionError):
    def __init__(self, name: str, spec: str, available: list[str]) -> None:
        self.name = name
        self.spec = spec
        self.available = list(available)
        offered = ", ".join(self.available) or "none"
        super().__init__(
            f"No version of '{name}' matches '{spec}'. Available versions: {offered}"
        )


class UnknownFamilyError(ResolutionError):
    def __init__(self, family: str, name: str = "") -> None:
        self.family = family
        self.name = name
        target = f" (requested for '{name}')" if name else ""
        super().__init__(f"Unknown version family '{family}'{target}")


class CyclicDependencyError(ResolutionError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class VersionConflictError(ResolutionError):
    """Raised instead of recording a conflict when conflicts are fatal."""

    def __init__(self, name: str, kept: str, rejected: str, required_by: str) -> None:
        self.name = name
        super().__init__(
            f"Version conflict for '{name}': {kept} already selected, "
            f"{required_by} requires {rejected}"
        )


class UnresolvedDependenciesError(ResolutionError):
    """Every requirement that could not be resolved, reported together."""

    def __init__(self, unresolved: list[tuple[str, str, str]]) -> None:
        # (package, required_by, reason)
        self.unresolved = list(unresolved)
        lines = [
            f"  - {name} (required by {parent}): {reason}"
            for name, parent, reason in self.unresolved
        ]
        super().__init__(
            "Could not resolve transitive dependencies:\n" + "\n".join(lines)
        )


class DependencyNotFoundError(ResolutionError):
    def __init__(self, name: str, where: str) -> None:
        self.name = name
        super().__init__(f"Dependency '{name}' is not listed in {where}")


# ---------------------------------------------------------------------------
# Store / IO
# ---------------------------------------------------------------------------


class StoreError(AurodepsError):
    exit_code = 2


class StoreIOError(StoreError):
    pass


class RemoteError(StoreError):
    """A metadata or archive request failed after all retries."""


class MissingArchitectureArtifactError(StoreError):
    def __init__(
        self, package: str, version: str, arch: str, available: list[str]
    ) -> None:
        self.package = package
        self.version = version
        self.arch = arch
        self.available = list(available)
        offered = ", ".join(self.available) or "none"
        super().__init__(
            f"No archive of {package}/{version} for architecture '{arch}'. "
            f"Available: {offered}"
        )


class UnsupportedArchitectureError(StoreError):
    def __init__(self, arch: str) -> None:
        self.arch = arch
        super().__init__(f"Unsupported architecture: {arch}")


class ManifestCorruptError(StoreError):
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(
            f"Lock manifest {path} is corrupt: {detail}. "
            "Run `auroradeps check` to inspect the store or "
            "`auroradeps init-clear` after `auroradeps deinit` to start over."
        )


class PatchError(StoreError):
    """A build file could not be patched (e.g. a required section is missing)."""


class ProjectLayoutError(StoreError):
    """CMakeLists.txt or the single rpm/*.spec file is missing."""


# ---------------------------------------------------------------------------
# Mode
# ---------------------------------------------------------------------------


class ModeError(AurodepsError):
    exit_code = 3


class ProjectNotInitializedError(ModeError):
    def __init__(self, operation: str) -> None:
        super().__init__(
            f"Cannot {operation}: project is not initialized. "
            "Run `auroradeps init` or `auroradeps init-clear` first."
        )


class InvalidModeTransitionError(ModeError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid mode transition: {current} -> {target}")
