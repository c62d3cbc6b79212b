"""Managed block models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from auroradeps.models.mode import ProjectMode


class FileKind(str, Enum):
    """Build-file formats the patcher knows how to mark up."""

    CMAKE = "cmake"
    RPM_SPEC = "rpm_spec"


class AnchorKind(str, Enum):
    """Where a new block is inserted when the file does not have it yet."""

    END = "end"
    AFTER_PROJECT = "after_project"
    SECTION = "section"
    BEFORE_NAME = "before_name"
    AFTER_BUILDREQUIRES = "after_buildrequires"


class Anchor(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: AnchorKind = AnchorKind.END
    section: str = ""  # RPM section name for AnchorKind.SECTION


class ManagedBlock(BaseModel):
    """An engine-owned region of a build file.

    At most one block exists per ``(file, block_key)``. ``content`` is the
    text between the markers, without a trailing newline.
    """

    model_config = ConfigDict(frozen=True)

    block_key: str
    mode: ProjectMode
    content: str
    anchor: Anchor = Anchor()
    file_path: str = ""
