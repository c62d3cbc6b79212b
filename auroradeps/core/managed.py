"""Managed mode: resolution delegated to an external Conan installation.

The engine owns ``conanfile.py`` (a plain list of ``name/version@user``
references) and asks an ``EnvironmentRunner`` for ``conan graph info``
JSON to learn which shared libraries the packages ship.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Any

from auroradeps.core.errors import StoreIOError
from auroradeps.core.interfaces import EnvironmentRunner
from auroradeps.core.version_resolver import VersionResolver, parse_spec
from auroradeps.models.packages import PackageRef

logger = logging.getLogger(__name__)

CONANFILE = "conanfile.py"
_REFERENCE = re.compile(r'"([^/"\s]+)/([^@"\s]+)@([^"\s]+)"')


def render_conanfile(refs: list[PackageRef], user: str = "aurora") -> str:
    """Text of ``conanfile.py`` requiring *refs*, sorted by name then version."""
    lines = [
        "from conan import ConanFile",
        "",
        "class Application(ConanFile):",
        '    settings = "os", "compiler", "arch", "build_type"',
        '    generators = "PkgConfigDeps"',
        "",
        "    requires = (",
    ]
    for ref in sorted(refs, key=lambda r: (r.name, r.version)):
        lines.append(f'        "{ref.name}/{ref.version}@{user}",')
    lines.append("    )")
    return "\n".join(lines) + "\n"


def parse_conanfile(text: str) -> list[PackageRef]:
    """References listed in a conanfile written by ``render_conanfile``.

    Examples
    --------
    >>> [str(r) for r in parse_conanfile('requires = ("fmt/10.2.1@aurora",)')]
    ['fmt/10.2.1']
    """
    return [
        PackageRef(name=match.group(1), version=match.group(2))
        for match in _REFERENCE.finditer(text)
    ]


def read_requires(project_root: Path) -> list[PackageRef]:
    path = Path(project_root) / CONANFILE
    if not path.exists():
        return []
    try:
        return parse_conanfile(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise StoreIOError(f"Cannot read {path}: {exc}") from exc


def collect_libs(value: Any, found: set[str] | None = None) -> set[str]:
    """Every string under a ``libs`` key, at any depth of the graph JSON."""
    found = set() if found is None else found
    if isinstance(value, dict):
        for key, nested in value.items():
            if key == "libs" and isinstance(nested, list):
                found.update(item.strip() for item in nested if isinstance(item, str) and item.strip())
            collect_libs(nested, found)
    elif isinstance(value, list):
        for nested in value:
            collect_libs(nested, found)
    return found


def lib_patterns(libs: set[str], modules: list[str]) -> list[str]:
    """``lib<name>.*`` patterns for ``__requires_exclude``.

    Falls back to one pattern per direct module when the graph reports no
    libraries.

    Examples
    --------
    >>> lib_patterns({"fmt", "libz"}, ["fmt"])
    ['libfmt.*', 'libz.*']
    >>> lib_patterns(set(), ["onnxruntime"])
    ['libonnxruntime.*']
    """
    patterns = {lib + ".*" if lib.startswith("lib") else f"lib{lib}.*" for lib in libs}
    if not patterns:
        patterns = {f"lib{module}.*" for module in modules}
    return sorted(patterns)


class SubprocessEnvironmentRunner:
    """Runs ``<command> graph info <root> --format json`` locally.

    *command* is split with shell rules, so wrappers such as
    ``sb2 -t AuroraOS-5.1-aarch64 conan`` work unchanged.
    """

    def __init__(self, command: str = "conan", timeout: float | None = 600.0) -> None:
        self._command = shlex.split(command)
        self._timeout = timeout

    def graph_info(self, project_root: Path) -> dict[str, Any]:
        argv = [*self._command, "graph", "info", str(project_root), "--format", "json"]
        logger.debug("Running %s", " ".join(argv))
        try:
            result = subprocess.run(
                argv, capture_output=True, text=True, timeout=self._timeout, check=False
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise StoreIOError(f"Cannot run {self._command[0]}: {exc}") from exc
        if result.returncode != 0:
            raise StoreIOError(
                f"`{' '.join(argv)}` exited with {result.returncode}: {result.stderr.strip()}"
            )
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise StoreIOError(f"Conan graph info returned invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreIOError("Conan graph info returned a non-object JSON document")
        return payload


class ManagedFlow:
    """Managed-mode resolution steps, free of file writes.

    Parameters
    ----------
    resolver:
        Picks versions from the provider's published version list.
    runner:
        Answers ``graph info`` for a project root. Only needed once the
        project has dependencies.
    """

    def __init__(
        self, resolver: VersionResolver, runner: EnvironmentRunner | None = None
    ) -> None:
        self._resolver = resolver
        self._runner = runner

    def resolve_direct(self, name: str, spec: str | None) -> PackageRef:
        version = self._resolver.resolve_remote(name, parse_spec(spec))
        return PackageRef(name=name, version=version)

    def link_metadata(
        self, project_root: Path, refs: list[PackageRef]
    ) -> tuple[list[str], list[str]]:
        """Return ``(pkg-config modules, shared library patterns)``."""
        if not refs:
            return [], []
        modules = sorted({ref.name for ref in refs})
        if self._runner is None:
            raise StoreIOError("Managed mode needs a Conan environment runner")
        graph = self._runner.graph_info(project_root)
        libs = collect_libs(graph)
        logger.debug("Graph info reported libraries: %s", ", ".join(sorted(libs)) or "none")
        return modules, lib_patterns(libs, modules)
