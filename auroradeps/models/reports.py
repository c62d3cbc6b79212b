"""End-of-operation summaries shown by the CLI."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from auroradeps.models.mode import ProjectMode
from auroradeps.models.packages import ArchitectureArtifact, VersionConflict


class MissingArtifact(BaseModel):
    """A package that has no usable archive for one target architecture."""

    model_config = ConfigDict(frozen=True)

    package: str
    version: str
    arch: str
    available: list[str] = Field(default_factory=list)

    def __str__(self) -> str:
        offered = ", ".join(self.available) or "none"
        return f"{self.package}/{self.version} [{self.arch}] (available: {offered})"


class InstallReport(BaseModel):
    """Result of installing a closure into the store."""

    model_config = ConfigDict(frozen=True)

    artifacts: list[ArchitectureArtifact] = Field(default_factory=list)
    installed: list[str] = Field(default_factory=list)  # freshly unpacked
    reused: list[str] = Field(default_factory=list)
    missing: list[MissingArtifact] = Field(default_factory=list)


class OperationReport(BaseModel):
    """What an ``init``/``add``/``remove``/``sync`` did."""

    model_config = ConfigDict(frozen=True)

    action: str
    mode: ProjectMode
    direct: list[str] = Field(default_factory=list)
    closure: list[str] = Field(default_factory=list)  # "name/version"
    arches: list[str] = Field(default_factory=list)
    installed: list[str] = Field(default_factory=list)
    reused: list[str] = Field(default_factory=list)
    reclaimed: list[str] = Field(default_factory=list)
    missing: list[MissingArtifact] = Field(default_factory=list)
    conflicts: list[VersionConflict] = Field(default_factory=list)
    changed_files: list[str] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.missing or self.conflicts)


class CheckReport(BaseModel):
    """Result of ``check``: the project mode and every inconsistency found."""

    model_config = ConfigDict(frozen=True)

    mode: ProjectMode
    direct: list[str] = Field(default_factory=list)
    artifacts: int = 0
    problems: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems
