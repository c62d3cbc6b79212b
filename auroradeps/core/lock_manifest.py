"""Lock manifest persistence and verification.

The manifest lives at ``thirdparty/aurora/manifest.lock.json``. It is
serialized with sorted keys, two-space indentation and a trailing newline
so that an unchanged recomputation produces byte-identical output and
diffs stay reviewable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from auroradeps.core.artifact_store import PackageStore
from auroradeps.core.errors import ManifestCorruptError
from auroradeps.models.manifest import LockManifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.lock.json"


def manifest_path(store_root: Path) -> Path:
    return Path(store_root) / MANIFEST_FILE


def dumps(manifest: LockManifest) -> str:
    """Deterministic JSON text of *manifest*."""
    payload = manifest.model_dump(mode="json")
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def loads(text: str, path: str = MANIFEST_FILE) -> LockManifest:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestCorruptError(path, f"invalid JSON ({exc})") from exc
    try:
        return LockManifest.model_validate(payload)
    except ValidationError as exc:
        raise ManifestCorruptError(path, f"schema mismatch ({exc.error_count()} errors)") from exc


def load(path: Path) -> LockManifest:
    """Read the manifest at *path*; a missing file is an empty manifest."""
    path = Path(path)
    if not path.exists():
        return LockManifest()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestCorruptError(str(path), f"unreadable ({exc})") from exc
    manifest = loads(text, str(path))
    logger.debug(
        "Loaded manifest %s: %d direct, %d resolved",
        path, len(manifest.direct_dependencies), len(manifest.resolved_graph),
    )
    return manifest


def verify(manifest: LockManifest, store: PackageStore) -> list[str]:
    """Cross-check the manifest against the store. Returns problems found."""
    problems: list[str] = []
    for dep in manifest.direct_dependencies:
        if dep.name not in manifest.resolved_graph:
            problems.append(f"{dep.name}: direct dependency is missing from the resolved graph")

    covered = {(a.package, a.version) for a in manifest.installed_artifacts}
    for name, node in sorted(manifest.resolved_graph.items()):
        if (name, node.version) not in covered:
            problems.append(f"{name}/{node.version}: no installed artifact for any architecture")
        for child in node.dependencies:
            if child not in manifest.resolved_graph:
                problems.append(f"{name}/{node.version}: dependency {child} is not in the graph")

    for artifact in manifest.installed_artifacts:
        locked = manifest.resolved_graph.get(artifact.package)
        if locked is None or locked.version != artifact.version:
            problems.append(
                f"{artifact.package}/{artifact.version} [{artifact.arch}]: "
                "artifact is not part of the resolved graph"
            )
        problems.extend(store.verify(artifact))

    recorded = {a.key for a in manifest.installed_artifacts}
    for artifact in store.installed():
        if artifact.key not in recorded:
            problems.append(
                f"{artifact.package}/{artifact.version} [{artifact.arch}]: "
                "in the store but not in the manifest; run `auroradeps sync`"
            )
    return problems
