"""Managed block patcher — engine-owned regions inside user build files.

A managed block is delimited by a begin and an end marker line that carry
the owning mode and the block key. Everything outside the markers belongs
to the user and is never touched.

Each file format is a ``BlockFormat`` strategy object with its own marker
vocabulary, key escaping and anchor locator:

- ``CMAKE_FORMAT``: ``# >>> auroradeps:<mode>:<key> >>>`` ...
  ``# <<< auroradeps:<mode>:<key> <<<``
- ``RPM_SPEC_FORMAT``: ``# auroradeps-begin <mode>/<key>`` ...
  ``# auroradeps-end <mode>/<key>`` with ``%`` written as ``%%`` so rpm
  never expands a macro inside a marker.

Text operations are pure; ``BlockPatcher`` applies them to files.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from auroradeps.core.errors import PatchError, StoreIOError
from auroradeps.core.transaction import atomic_write_text
from auroradeps.models.blocks import Anchor, AnchorKind, FileKind, ManagedBlock
from auroradeps.models.mode import ProjectMode

logger = logging.getLogger(__name__)

_CMAKE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")
_CMAKE_PROJECT = re.compile(r"^\s*project\s*\(", re.IGNORECASE)
_RPM_NAME = re.compile(r"^Name:")
_RPM_BUILDREQUIRES = re.compile(r"^BuildRequires:")
_RPM_DESCRIPTION = re.compile(r"^%description\b")


@dataclass(frozen=True)
class _Span:
    start: int  # index of the begin marker line
    end: int  # index of the end marker line
    mode: str
    key: str


@dataclass(frozen=True)
class BlockFormat:
    """Marker vocabulary and anchor rules of one build-file format."""

    kind: FileKind
    begin: Callable[[str, str], str]
    end: Callable[[str, str], str]
    begin_pattern: re.Pattern[str]
    end_pattern: re.Pattern[str]
    check_key: Callable[[str], str]
    unescape_key: Callable[[str], str]
    locate: Callable[[list[str], Anchor, list[_Span]], int]


# ---------------------------------------------------------------------------
# Anchor helpers
# ---------------------------------------------------------------------------


def _inside(spans: list[_Span]) -> set[int]:
    return {i for s in spans for i in range(s.start, s.end + 1)}


def _skip_blocks(lines: list[str], index: int, spans: list[_Span]) -> int:
    """Advance *index* past blocks already sitting at an anchor."""
    starts = {s.start: s for s in spans}
    while True:
        cursor = index
        while cursor < len(lines) and not lines[cursor].strip():
            cursor += 1
        span = starts.get(cursor)
        if span is None:
            return index
        index = span.end + 1


def _first_match(
    lines: list[str], pattern: re.Pattern[str], spans: list[_Span]
) -> int | None:
    skip = _inside(spans)
    for i, line in enumerate(lines):
        if i not in skip and pattern.match(line):
            return i
    return None


def _last_match(
    lines: list[str], pattern: re.Pattern[str], spans: list[_Span]
) -> int | None:
    skip = _inside(spans)
    found = None
    for i, line in enumerate(lines):
        if i not in skip and pattern.match(line):
            found = i
    return found


def _end_of_call(lines: list[str], start: int) -> int:
    """Index of the line closing the parenthesized call opened at *start*."""
    depth = 0
    for i in range(start, len(lines)):
        depth += lines[i].count("(") - lines[i].count(")")
        if depth <= 0:
            return i
    return len(lines) - 1


def _locate_cmake(lines: list[str], anchor: Anchor, spans: list[_Span]) -> int:
    if anchor.kind is AnchorKind.AFTER_PROJECT:
        project = _first_match(lines, _CMAKE_PROJECT, spans)
        if project is not None:
            return _skip_blocks(lines, _end_of_call(lines, project) + 1, spans)
        return len(lines)
    if anchor.kind is AnchorKind.END:
        return len(lines)
    raise PatchError(f"Anchor '{anchor.kind.value}' is not valid for CMakeLists.txt")


def _locate_rpm(lines: list[str], anchor: Anchor, spans: list[_Span]) -> int:
    if anchor.kind is AnchorKind.END:
        return len(lines)
    if anchor.kind is AnchorKind.SECTION:
        header = re.compile(rf"^%{re.escape(anchor.section)}\s*$")
        index = _first_match(lines, header, spans)
        if index is None:
            raise PatchError(f"Section %{anchor.section} not found in the .spec file")
        return _skip_blocks(lines, index + 1, spans)
    if anchor.kind is AnchorKind.BEFORE_NAME:
        index = _first_match(lines, _RPM_NAME, spans)
        return 0 if index is None else index
    if anchor.kind is AnchorKind.AFTER_BUILDREQUIRES:
        index = _last_match(lines, _RPM_BUILDREQUIRES, spans)
        if index is not None:
            return _skip_blocks(lines, index + 1, spans)
        index = _first_match(lines, _RPM_DESCRIPTION, spans)
        return len(lines) if index is None else index
    raise PatchError(f"Anchor '{anchor.kind.value}' is not valid for .spec files")


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


def _check_cmake_key(key: str) -> str:
    if not _CMAKE_KEY.match(key):
        raise PatchError(f"Invalid block key '{key}': use letters, digits, '_', '.', '-'")
    return key


def _check_rpm_key(key: str) -> str:
    if not key or any(c.isspace() for c in key):
        raise PatchError(f"Invalid block key '{key}': keys cannot contain whitespace")
    return key.replace("%", "%%")


CMAKE_FORMAT = BlockFormat(
    kind=FileKind.CMAKE,
    begin=lambda mode, key: f"# >>> auroradeps:{mode}:{key} >>>",
    end=lambda mode, key: f"# <<< auroradeps:{mode}:{key} <<<",
    begin_pattern=re.compile(r"^\s*# >>> auroradeps:(?P<mode>[a-z]+):(?P<key>[A-Za-z0-9_.-]+) >>>\s*$"),
    end_pattern=re.compile(r"^\s*# <<< auroradeps:(?P<mode>[a-z]+):(?P<key>[A-Za-z0-9_.-]+) <<<\s*$"),
    check_key=_check_cmake_key,
    unescape_key=lambda key: key,
    locate=_locate_cmake,
)

RPM_SPEC_FORMAT = BlockFormat(
    kind=FileKind.RPM_SPEC,
    begin=lambda mode, key: f"# auroradeps-begin {mode}/{key}",
    end=lambda mode, key: f"# auroradeps-end {mode}/{key}",
    begin_pattern=re.compile(r"^# auroradeps-begin (?P<mode>[a-z]+)/(?P<key>\S+)\s*$"),
    end_pattern=re.compile(r"^# auroradeps-end (?P<mode>[a-z]+)/(?P<key>\S+)\s*$"),
    check_key=_check_rpm_key,
    unescape_key=lambda key: key.replace("%%", "%"),
    locate=_locate_rpm,
)

FORMATS: dict[FileKind, BlockFormat] = {
    FileKind.CMAKE: CMAKE_FORMAT,
    FileKind.RPM_SPEC: RPM_SPEC_FORMAT,
}


# ---------------------------------------------------------------------------
# Text operations
# ---------------------------------------------------------------------------


def _split(text: str) -> tuple[list[str], bool]:
    return text.splitlines(), text.endswith("\n") or not text


def _join(lines: list[str], trailing: bool) -> str:
    if not lines:
        return ""
    return "\n".join(lines) + ("\n" if trailing else "")


def find_blocks(text: str, fmt: BlockFormat) -> list[_Span]:
    """Locate every managed block of *fmt* in *text*, in file order."""
    return _scan(text.splitlines(), fmt)


def _scan(lines: list[str], fmt: BlockFormat) -> list[_Span]:
    spans: list[_Span] = []
    i = 0
    while i < len(lines):
        begin = fmt.begin_pattern.match(lines[i])
        if not begin:
            i += 1
            continue
        mode, raw_key = begin.group("mode"), begin.group("key")
        close = None
        for j in range(i + 1, len(lines)):
            end = fmt.end_pattern.match(lines[j])
            if end and end.group("mode") == mode and end.group("key") == raw_key:
                close = j
                break
        if close is None:
            raise PatchError(
                f"Unterminated managed block '{fmt.unescape_key(raw_key)}' "
                f"({mode}) at line {i + 1}"
            )
        spans.append(_Span(i, close, mode, fmt.unescape_key(raw_key)))
        i = close + 1
    return spans


def block_keys(text: str, fmt: BlockFormat) -> list[tuple[str, str]]:
    """Return ``(mode, key)`` of every block in *text*."""
    return [(s.mode, s.key) for s in find_blocks(text, fmt)]


def upsert(text: str, block: ManagedBlock, fmt: BlockFormat) -> str:
    """Insert *block* or replace the existing block with the same key.

    Upserting content identical to what is already there returns the input
    unchanged.
    """
    escaped = fmt.check_key(block.block_key)
    mode = block.mode.value
    lines, trailing = _split(text)
    spans = _scan(lines, fmt)
    rendered = [fmt.begin(mode, escaped), *block.content.splitlines(), fmt.end(mode, escaped)]

    for span in spans:
        if span.key == block.block_key:
            lines[span.start:span.end + 1] = rendered
            return _join(lines, trailing)

    index = fmt.locate(lines, block.anchor, spans)
    if index > 0 and lines[index - 1].strip():
        rendered.insert(0, "")
    lines[index:index] = rendered
    return _join(lines, trailing)


def _drop(lines: list[str], spans: list[_Span]) -> list[str]:
    for span in sorted(spans, key=lambda s: s.start, reverse=True):
        start = span.start
        if start > 0 and not lines[start - 1].strip():
            start -= 1
        del lines[start:span.end + 1]
    return lines


def remove(text: str, key: str, fmt: BlockFormat) -> str:
    """Delete the block *key* together with the blank line before it."""
    lines, trailing = _split(text)
    spans = [s for s in _scan(lines, fmt) if s.key == key]
    if not spans:
        return text
    return _join(_drop(lines, spans), trailing)


def remove_all(text: str, mode: ProjectMode, fmt: BlockFormat) -> str:
    """Delete every block owned by *mode*."""
    lines, trailing = _split(text)
    spans = [s for s in _scan(lines, fmt) if s.mode == mode.value]
    if not spans:
        return text
    return _join(_drop(lines, spans), trailing)


def remove_foreign(text: str, active: ProjectMode, fmt: BlockFormat) -> str:
    """Delete every block whose mode is not *active*, in one pass."""
    lines, trailing = _split(text)
    spans = [s for s in _scan(lines, fmt) if s.mode != active.value]
    if not spans:
        return text
    return _join(_drop(lines, spans), trailing)


# ---------------------------------------------------------------------------
# File operations
# ---------------------------------------------------------------------------


class BlockPatcher:
    """Applies block operations to build files on disk.

    Examples
    --------
    >>> patcher = BlockPatcher()
    >>> patcher.format_for(Path("CMakeLists.txt")).kind
    <FileKind.CMAKE: 'cmake'>
    """

    def format_for(self, path: Path) -> BlockFormat:
        if Path(path).suffix == ".spec":
            return RPM_SPEC_FORMAT
        return CMAKE_FORMAT

    def apply(self, path: Path, text: str, blocks: list[ManagedBlock]) -> str:
        """Upsert *blocks* into *text* (the contents of *path*) in order."""
        fmt = self.format_for(path)
        for block in blocks:
            text = upsert(text, block, fmt)
        return text

    def upsert_file(self, path: Path, block: ManagedBlock) -> bool:
        return self._rewrite(path, lambda text, fmt: upsert(text, block, fmt))

    def remove_file(self, path: Path, key: str) -> bool:
        return self._rewrite(path, lambda text, fmt: remove(text, key, fmt))

    def remove_all_file(self, path: Path, mode: ProjectMode) -> bool:
        return self._rewrite(path, lambda text, fmt: remove_all(text, mode, fmt))

    def _rewrite(self, path: Path, change: Callable[[str, BlockFormat], str]) -> bool:
        path = Path(path)
        try:
            original = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(f"Cannot read {path}: {exc}") from exc
        updated = change(original, self.format_for(path))
        if updated == original:
            return False
        atomic_write_text(path, updated)
        logger.debug("Patched %s", path)
        return True
