"""Consuming-project layout: where the build files live."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from auroradeps.core.errors import ProjectLayoutError

CMAKE_FILE = "CMakeLists.txt"
RPM_DIR = "rpm"


@dataclass(frozen=True)
class ProjectLayout:
    """Paths of one project. Build with ``ProjectLayout.discover``."""

    root: Path
    cmake_file: Path
    spec_file: Path
    store_root: str = "thirdparty/aurora"

    @property
    def store_dir(self) -> Path:
        return self.root / self.store_root

    @property
    def build_files(self) -> list[Path]:
        return [self.cmake_file, self.spec_file]

    @classmethod
    def discover(cls, root: Path, store_root: str = "thirdparty/aurora") -> ProjectLayout:
        """Locate CMakeLists.txt and the single ``rpm/*.spec`` file."""
        root = Path(root).resolve()
        cmake = root / CMAKE_FILE
        if not cmake.is_file():
            raise ProjectLayoutError(f"{CMAKE_FILE} not found in {root}")
        rpm_dir = root / RPM_DIR
        if not rpm_dir.is_dir():
            raise ProjectLayoutError(f"Directory {RPM_DIR}/ not found in {root}")
        specs = sorted(rpm_dir.glob("*.spec"))
        if not specs:
            raise ProjectLayoutError(f"No .spec file found in {rpm_dir}")
        if len(specs) > 1:
            names = ", ".join(p.name for p in specs)
            raise ProjectLayoutError(f"Expected exactly one .spec file in {rpm_dir}, found: {names}")
        return cls(root=root, cmake_file=cmake, spec_file=specs[0], store_root=store_root)

    def relative(self, path: Path) -> str:
        try:
            return Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).as_posix()
