"""auroradeps: third-party dependency management for Aurora OS applications.

Two mutually exclusive project modes:
  - managed: resolution delegated to an installed Conan, driven by conanfile.py
  - clear: packages vendored into the project store with generated pkg-config
    files, a lock manifest, and CMake/RPM spec blocks pointing at them
"""

__version__ = "0.1.0"
__description__ = "Third-party dependency manager for Aurora OS CMake/RPM projects"

from auroradeps.core.orchestrator import Orchestrator
from auroradeps.cli.app import app as cli

__all__ = ["Orchestrator", "cli", "__version__"]
