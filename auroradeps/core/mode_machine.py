"""Project mode state machine.

Enforces:
- Valid mode transitions only (VALID_MODE_TRANSITIONS table)
- Dependency commands refuse to run on an uninitialized project
- The persisted marker wins over legacy detection
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from auroradeps.core.errors import (
    InvalidModeTransitionError,
    ProjectNotInitializedError,
    StoreIOError,
)
from auroradeps.models.mode import VALID_MODE_TRANSITIONS, ModeState, ProjectMode

logger = logging.getLogger(__name__)

MODE_FILE = ".auroradeps-mode.json"
CONANFILE = "conanfile.py"


def mode_path(project_root: Path) -> Path:
    return Path(project_root) / MODE_FILE


def load_state(project_root: Path) -> ModeState | None:
    """Read the mode marker, or None when the project has none."""
    path = mode_path(project_root)
    if not path.exists():
        return None
    try:
        return ModeState.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise StoreIOError(
            f"Mode marker {path} is unreadable: {exc}. "
            "Delete it and run `auroradeps init` or `auroradeps init-clear`."
        ) from exc


def render_state(state: ModeState) -> str:
    return json.dumps(state.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"


def detect_mode(project_root: Path, store_root: str = "thirdparty/aurora") -> ProjectMode:
    """Current mode: the marker if present, else legacy detection."""
    state = load_state(project_root)
    if state is not None:
        return state.mode
    root = Path(project_root)
    if (root / CONANFILE).exists():
        logger.debug("No mode marker; %s found, assuming managed mode", CONANFILE)
        return ProjectMode.MANAGED
    if (root / store_root).is_dir():
        logger.debug("No mode marker; %s found, assuming clear mode", store_root)
        return ProjectMode.CLEAR
    return ProjectMode.UNINITIALIZED


class ModeMachine:
    """Validates and records mode transitions for one project.

    Parameters
    ----------
    project_root:
        Directory holding CMakeLists.txt and the mode marker.
    store_root:
        Store directory relative to the project root.
    """

    def __init__(self, project_root: Path, store_root: str = "thirdparty/aurora") -> None:
        self._root = Path(project_root)
        self._store_root = store_root

    @property
    def current(self) -> ProjectMode:
        return detect_mode(self._root, self._store_root)

    def check_transition(self, target: ProjectMode) -> ProjectMode:
        """Return the current mode if moving to *target* is allowed."""
        current = self.current
        if target not in VALID_MODE_TRANSITIONS.get(current, set()):
            raise InvalidModeTransitionError(current.value, target.value)
        return current

    def require_initialized(self, operation: str) -> ProjectMode:
        current = self.current
        if current is ProjectMode.UNINITIALIZED:
            raise ProjectNotInitializedError(operation)
        return current

    def marker_text(self, target: ProjectMode) -> str:
        return render_state(ModeState(mode=target, store_root=self._store_root))

    @property
    def marker_path(self) -> Path:
        return mode_path(self._root)
