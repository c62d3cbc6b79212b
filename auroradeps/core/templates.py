"""Block templates for CMakeLists.txt and the RPM .spec file.

Each mode owns its own set of blocks. Switching modes removes the blocks of
the other mode before these are written.
"""

from __future__ import annotations

from auroradeps.models.blocks import Anchor, AnchorKind, ManagedBlock
from auroradeps.models.mode import ProjectMode

NO_DEPENDENCIES = "# No dependencies configured."

_AFTER_PROJECT = Anchor(kind=AnchorKind.AFTER_PROJECT)
_END = Anchor(kind=AnchorKind.END)

_ARCH_CASE = [
    'case "%{_arch}" in',
    '  aarch64) AURORA_TP_ARCH="armv8" ;;',
    '  armv7hl) AURORA_TP_ARCH="armv7" ;;',
    '  x86_64) AURORA_TP_ARCH="x86_64" ;;',
    '  *) echo "Unsupported arch: %{_arch}" >&2; exit 1 ;;',
    "esac",
]


def module_to_alias(module: str) -> str:
    """CMake variable prefix for a pkg-config module.

    Examples
    --------
    >>> module_to_alias("nlohmann_json")
    'NLOHMANN_JSON'
    >>> module_to_alias("qt5-base")
    'QT5_BASE'
    """
    return "".join(c.upper() if c.isascii() and c.isalnum() else "_" for c in module)


def requires_exclude(patterns: list[str]) -> str:
    """Regex for ``__requires_exclude`` built from ``lib<name>.*`` patterns."""
    unique = sorted(set(patterns))
    return f"^({'|'.join(unique)})$" if unique else "^$"


# ---------------------------------------------------------------------------
# CMake
# ---------------------------------------------------------------------------


def _clear_arch_body(store_root: str) -> str:
    return "\n".join([
        'if(CMAKE_SYSTEM_PROCESSOR MATCHES "^(aarch64|arm64)$")',
        '  set(AURORA_TP_ARCH "armv8")',
        'elseif(CMAKE_SYSTEM_PROCESSOR MATCHES "^(armv7|armv7hl)$")',
        '  set(AURORA_TP_ARCH "armv7")',
        'elseif(CMAKE_SYSTEM_PROCESSOR MATCHES "^(x86_64|amd64)$")',
        '  set(AURORA_TP_ARCH "x86_64")',
        "else()",
        '  message(FATAL_ERROR "Unsupported architecture: ${CMAKE_SYSTEM_PROCESSOR}")',
        "endif()",
        "",
        f'set(AURORA_TP_ROOT "${{CMAKE_CURRENT_SOURCE_DIR}}/{store_root}")',
        'set(AURORA_TP_PKGCONFIG_DIR "${AURORA_TP_ROOT}/${AURORA_TP_ARCH}/pkgconfig")',
        'if(DEFINED ENV{PKG_CONFIG_PATH} AND NOT "$ENV{PKG_CONFIG_PATH}" STREQUAL "")',
        '  set(ENV{PKG_CONFIG_PATH} "${AURORA_TP_PKGCONFIG_DIR}:$ENV{PKG_CONFIG_PATH}")',
        "else()",
        '  set(ENV{PKG_CONFIG_PATH} "${AURORA_TP_PKGCONFIG_DIR}")',
        "endif()",
    ])


def _targets_body(aliases: list[str]) -> str:
    entries = "\n".join(f"      PkgConfig::{alias}" for alias in aliases)
    return (
        "if(TARGET ${PROJECT_NAME})\n"
        "  target_include_directories(${PROJECT_NAME} PRIVATE\n"
        "    $<BUILD_INTERFACE:\n"
        f"{entries}\n"
        "    >\n"
        "  )\n"
        "\n"
        "  target_link_libraries(${PROJECT_NAME} PRIVATE\n"
        f"{entries}\n"
        "  )\n"
        "endif()"
    )


def cmake_blocks(
    mode: ProjectMode, modules: list[str], store_root: str = "thirdparty/aurora"
) -> list[ManagedBlock]:
    """Blocks for CMakeLists.txt. *modules* are the direct pkg-config modules."""
    modules = sorted(set(modules))
    blocks = [
        ManagedBlock(
            block_key="find-pkgconfig",
            mode=mode,
            content="find_package(PkgConfig REQUIRED)",
            anchor=_AFTER_PROJECT,
        )
    ]
    if mode is ProjectMode.CLEAR:
        blocks.append(
            ManagedBlock(
                block_key="clear-arch",
                mode=mode,
                content=_clear_arch_body(store_root),
                anchor=_AFTER_PROJECT,
            )
        )
    blocks.append(
        ManagedBlock(
            block_key="rpath",
            mode=mode,
            content="\n".join([
                "set(CMAKE_SKIP_RPATH FALSE)",
                "set(CMAKE_BUILD_WITH_INSTALL_RPATH TRUE)",
                'set(CMAKE_INSTALL_RPATH "${CMAKE_INSTALL_PREFIX}/share/${PROJECT_NAME}/lib")',
            ]),
            anchor=_AFTER_PROJECT,
        )
    )

    if modules:
        pkg_body = "\n".join(
            f"pkg_check_modules({module_to_alias(m)} REQUIRED IMPORTED_TARGET {m})"
            for m in modules
        )
        targets_body = _targets_body([module_to_alias(m) for m in modules])
    else:
        pkg_body = targets_body = NO_DEPENDENCIES
    blocks.append(ManagedBlock(block_key="pkgconfig", mode=mode, content=pkg_body, anchor=_END))
    blocks.append(ManagedBlock(block_key="targets", mode=mode, content=targets_body, anchor=_END))
    return blocks


# ---------------------------------------------------------------------------
# RPM
# ---------------------------------------------------------------------------


def rpm_blocks(
    mode: ProjectMode, lib_patterns: list[str], store_root: str = "thirdparty/aurora"
) -> list[ManagedBlock]:
    """Blocks for the .spec file. *lib_patterns* feed ``__requires_exclude``."""
    defines = "\n".join([
        "%define _cmake_skip_rpath %{nil}",
        "%define __provides_exclude_from ^%{_datadir}/%{name}/lib/.*$",
        f"%define __requires_exclude {requires_exclude(lib_patterns)}",
    ])
    blocks = [
        ManagedBlock(
            block_key="defines",
            mode=mode,
            content=defines,
            anchor=Anchor(kind=AnchorKind.BEFORE_NAME),
        )
    ]

    if mode is ProjectMode.MANAGED:
        blocks.append(
            ManagedBlock(
                block_key="buildrequires",
                mode=mode,
                content="BuildRequires:  conan",
                anchor=Anchor(kind=AnchorKind.AFTER_BUILDREQUIRES),
            )
        )
        build = [
            'CONAN_LIB_DIR="%{_builddir}/conan-libs/"',
            "%{set_build_flags}",
            'conan-install-if-modified --source-folder="%{_sourcedir}/.." '
            '--output-folder="$CONAN_LIB_DIR" -vwarning',
            'PKG_CONFIG_PATH="$CONAN_LIB_DIR:$PKG_CONFIG_PATH"',
            "export PKG_CONFIG_PATH",
        ]
        install = [
            'EXECUTABLE="%{buildroot}/%{_bindir}/%{name}"',
            'CONAN_LIB_DIR="%{_builddir}/conan-libs/"',
            'SHARED_LIBRARIES="%{buildroot}/%{_datadir}/%{name}/lib"',
            'mkdir -p "$SHARED_LIBRARIES"',
            'conan-deploy-libraries "$EXECUTABLE" "$CONAN_LIB_DIR" "$SHARED_LIBRARIES"',
        ]
    else:
        root = f'THIRDPARTY_ROOT="%{{_sourcedir}}/../{store_root}"'
        build = [
            root,
            *_ARCH_CASE,
            'THIRDPARTY_ARCH_DIR="$THIRDPARTY_ROOT/$AURORA_TP_ARCH"',
            'PKG_CONFIG_PATH="$THIRDPARTY_ARCH_DIR/pkgconfig:$PKG_CONFIG_PATH"',
            "export PKG_CONFIG_PATH",
        ]
        install = [
            root,
            *_ARCH_CASE,
            'THIRDPARTY_ARCH_DIR="$THIRDPARTY_ROOT/$AURORA_TP_ARCH"',
            'SHARED_LIBRARIES="%{buildroot}/%{_datadir}/%{name}/lib"',
            'mkdir -p "$SHARED_LIBRARIES"',
            "find \"$THIRDPARTY_ARCH_DIR/packages\" -type f -name 'lib*.so*' "
            "-exec cp -P {} \"$SHARED_LIBRARIES\" \\; 2>/dev/null || true",
        ]

    blocks.append(
        ManagedBlock(
            block_key="build-snippet",
            mode=mode,
            content="\n".join(build),
            anchor=Anchor(kind=AnchorKind.SECTION, section="build"),
        )
    )
    blocks.append(
        ManagedBlock(
            block_key="install-snippet",
            mode=mode,
            content="\n".join(install),
            anchor=Anchor(kind=AnchorKind.SECTION, section="install"),
        )
    )
    return blocks
