"""Link metadata — pkg-config descriptors generated from unpacked trees.

A descriptor is a pure function of the unpack root and the graph edges:
regenerating it never reads a previous ``.pc`` file. The rendered file is
relocatable; its prefix is expressed relative to ``${pcfiledir}``.
"""

from __future__ import annotations

from pathlib import Path

from auroradeps.models.packages import DependencyNode, PackageDescriptor

_INCLUDE_DIR = "include"
_LIB_DIR = "lib"


def discover_lib_names(unpack_root: Path) -> list[str]:
    """Return link names of the shared libraries under ``lib/``.

    ``lib/libfoo.so.1.2`` yields ``foo``. Names are deduplicated and sorted.
    """
    lib_dir = Path(unpack_root) / _LIB_DIR
    if not lib_dir.is_dir():
        return []
    names: set[str] = set()
    for entry in lib_dir.iterdir():
        filename = entry.name
        if not filename.startswith("lib") or ".so" not in filename:
            continue
        stem = filename.split(".so", 1)[0]
        if len(stem) > 3:
            names.add(stem[3:])
    return sorted(names)


def generate_descriptor(
    node: DependencyNode, unpack_root: Path, requires: list[str]
) -> PackageDescriptor:
    """Build the descriptor of *node* from its unpacked tree.

    Parameters
    ----------
    node:
        The resolved package.
    unpack_root:
        Where the package's archive was unpacked for one architecture.
    requires:
        Names of the node's dependencies installed for that architecture.
    """
    root = Path(unpack_root)
    library_names = discover_lib_names(root)
    return PackageDescriptor(
        name=node.name,
        version=node.version,
        include_paths=[_INCLUDE_DIR] if (root / _INCLUDE_DIR).is_dir() else [],
        library_search_paths=[_LIB_DIR] if library_names else [],
        library_names=library_names,
        requires=sorted(set(requires)),
    )


def render_pkg_config(descriptor: PackageDescriptor) -> str:
    """Render *descriptor* as the text of ``<name>.pc``.

    Examples
    --------
    >>> d = PackageDescriptor(name="fmt", version="10.2.1",
    ...                       include_paths=["include"],
    ...                       library_search_paths=["lib"], library_names=["fmt"])
    >>> print(render_pkg_config(d), end="")
    prefix=${pcfiledir}/../packages/fmt/10.2.1
    includedir=${prefix}/include
    libdir=${prefix}/lib
    <BLANKLINE>
    Name: fmt
    Description: fmt 10.2.1 (vendored by auroradeps)
    Version: 10.2.1
    Cflags: -I${includedir}
    Libs: -L${libdir} -lfmt
    """
    lines = [
        f"prefix=${{pcfiledir}}/../packages/{descriptor.name}/{descriptor.version}",
        f"includedir=${{prefix}}/{_INCLUDE_DIR}",
        f"libdir=${{prefix}}/{_LIB_DIR}",
        "",
        f"Name: {descriptor.name}",
        f"Description: {descriptor.name} {descriptor.version} (vendored by auroradeps)",
        f"Version: {descriptor.version}",
    ]
    if descriptor.requires:
        lines.append(f"Requires: {', '.join(descriptor.requires)}")

    cflags = ["-I${includedir}" if p == _INCLUDE_DIR else f"-I${{prefix}}/{p}"
              for p in descriptor.include_paths]
    lines.append(" ".join(["Cflags:", *cflags]))

    libs: list[str] = []
    if not descriptor.header_only:
        libs = ["-L${libdir}" if p == _LIB_DIR else f"-L${{prefix}}/{p}"
                for p in descriptor.library_search_paths]
        libs += [f"-l{name}" for name in descriptor.library_names]
    lines.append(" ".join(["Libs:", *libs]))
    return "\n".join(lines) + "\n"
