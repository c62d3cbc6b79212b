"""auroradeps data models — all Pydantic v2, all frozen (immutable)."""

from auroradeps.models.blocks import Anchor, AnchorKind, FileKind, ManagedBlock
from auroradeps.models.manifest import DirectDependency, LockedNode, LockManifest
from auroradeps.models.mode import VALID_MODE_TRANSITIONS, ModeState, ProjectMode
from auroradeps.models.packages import (
    HEADER_ONLY_VARIANT,
    UNRESOLVED_VERSION,
    ArchitectureArtifact,
    DependencyGraph,
    DependencyNode,
    PackageDescriptor,
    PackageRef,
    Requirement,
    SpecKind,
    VersionConflict,
    VersionSpec,
)
from auroradeps.models.reports import (
    CheckReport,
    InstallReport,
    MissingArtifact,
    OperationReport,
)

__all__ = [
    # mode
    "ProjectMode",
    "ModeState",
    "VALID_MODE_TRANSITIONS",
    # packages
    "UNRESOLVED_VERSION",
    "HEADER_ONLY_VARIANT",
    "SpecKind",
    "VersionSpec",
    "PackageRef",
    "Requirement",
    "DependencyNode",
    "DependencyGraph",
    "VersionConflict",
    "ArchitectureArtifact",
    "PackageDescriptor",
    # manifest
    "DirectDependency",
    "LockedNode",
    "LockManifest",
    # blocks
    "FileKind",
    "AnchorKind",
    "Anchor",
    "ManagedBlock",
    # reports
    "MissingArtifact",
    "InstallReport",
    "OperationReport",
    "CheckReport",
]
