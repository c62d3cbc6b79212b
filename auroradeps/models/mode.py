"""Project mode models — the persisted mode marker and valid transitions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ProjectMode(str, Enum):
    """Which integration flow owns the project's build files."""

    UNINITIALIZED = "uninitialized"
    MANAGED = "managed"
    CLEAR = "clear"


# Re-initializing in the same mode is not a transition; use `sync` instead.
VALID_MODE_TRANSITIONS: dict[ProjectMode, set[ProjectMode]] = {
    ProjectMode.UNINITIALIZED: {ProjectMode.MANAGED, ProjectMode.CLEAR},
    ProjectMode.MANAGED: {ProjectMode.CLEAR, ProjectMode.UNINITIALIZED},
    ProjectMode.CLEAR: {ProjectMode.MANAGED, ProjectMode.UNINITIALIZED},
}


class ModeState(BaseModel):
    """Contents of the ``.auroradeps-mode.json`` marker file."""

    model_config = ConfigDict(frozen=True)

    version: int = 1
    mode: ProjectMode
    store_root: str = "thirdparty/aurora"
