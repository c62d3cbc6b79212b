"""Project lock and staged, atomic multi-file writes.

A mutating command holds ``project_lock`` for its whole duration, so two
commands on one project never interleave. File changes are staged in a
``FileTransaction`` and only written once every earlier step (resolution
and installation) has succeeded.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from auroradeps.core.errors import StoreIOError

logger = logging.getLogger(__name__)

PROJECT_LOCK_FILE = ".auroradeps.lock"


@contextmanager
def project_lock(project_root: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on the project for the block."""
    lock_path = Path(project_root) / PROJECT_LOCK_FILE
    try:
        handle = lock_path.open("a+", encoding="utf-8")
    except OSError as exc:
        raise StoreIOError(f"Cannot lock project {project_root}: {exc}") from exc
    with handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _write_temp(path: Path, content: str) -> Path:
    """Write *content* to a synced temp file next to *path*; return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return Path(tmp_name)


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via temp file, fsync and ``os.replace``."""
    path = Path(path)
    try:
        tmp = _write_temp(path, content)
        os.replace(tmp, path)
    except OSError as exc:
        raise StoreIOError(f"Cannot write {path}: {exc}") from exc


class FileTransaction:
    """Stages text files and writes them together.

    ``commit`` skips files whose content did not change, writes every
    changed file to a synced temp sibling and only then renames them into
    place, in staging order. Files staged with ``last=True`` (the lock
    manifest) are renamed after all others.

    Examples
    --------
    >>> tx = FileTransaction()
    >>> tx.stage(Path("/tmp/a.txt"), "hello\\n")
    >>> tx.staged_paths()
    [PosixPath('/tmp/a.txt')]
    """

    def __init__(self) -> None:
        self._staged: dict[Path, str] = {}
        self._last: set[Path] = set()
        self._deletes: list[Path] = []

    def stage(self, path: Path, content: str, *, last: bool = False) -> None:
        path = Path(path)
        self._staged[path] = content
        if last:
            self._last.add(path)

    def stage_delete(self, path: Path) -> None:
        self._deletes.append(Path(path))

    def read(self, path: Path) -> str:
        """Current text of *path*: staged content first, disk second."""
        path = Path(path)
        if path in self._staged:
            return self._staged[path]
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(f"Cannot read {path}: {exc}") from exc

    def staged_paths(self) -> list[Path]:
        return list(self._staged)

    def commit(self) -> list[Path]:
        """Write all changed files. Returns the paths that changed on disk."""
        ordered = [p for p in self._staged if p not in self._last]
        ordered += [p for p in self._staged if p in self._last]
        changed = [p for p in ordered if not _unchanged(p, self._staged[p])]

        temps: dict[Path, Path] = {}
        try:
            for path in changed:
                temps[path] = _write_temp(path, self._staged[path])
            for path in changed:
                os.replace(temps.pop(path), path)
                logger.debug("Wrote %s", path)
        except OSError as exc:
            for tmp in temps.values():
                tmp.unlink(missing_ok=True)
            raise StoreIOError(f"Failed to write project files: {exc}") from exc

        deleted: list[Path] = []
        for path in self._deletes:
            if path.exists():
                try:
                    path.unlink()
                except OSError as exc:
                    raise StoreIOError(f"Cannot delete {path}: {exc}") from exc
                deleted.append(path)
                logger.debug("Deleted %s", path)

        self._staged.clear()
        self._last.clear()
        self._deletes.clear()
        return changed + deleted


def _unchanged(path: Path, content: str) -> bool:
    try:
        return path.read_text(encoding="utf-8") == content
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise StoreIOError(f"Cannot read {path}: {exc}") from exc
