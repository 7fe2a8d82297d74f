"""Deterministic build and install locations inside a workspace."""

from __future__ import annotations

import re
import shutil
import sys
from pathlib import Path

from cratepkg.package_id import PackageId
from cratepkg.workspace import Workspace

if sys.platform == "win32":
    EXE_SUFFIX = ".exe"
    DLL_PREFIX = ""
    DLL_SUFFIX = ".dll"
elif sys.platform == "darwin":
    EXE_SUFFIX = ""
    DLL_PREFIX = "lib"
    DLL_SUFFIX = ".dylib"
else:
    EXE_SUFFIX = ""
    DLL_PREFIX = "lib"
    DLL_SUFFIX = ".so"

_LIBRARY_STEM = re.compile(r"(?P<name>.+?)-(?P<hash>[0-9a-f]{8})-(?P<version>.+)")


def build_pkg_id_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path:
    """Per-package scratch directory."""
    return workspace.build / pkg_id.relative_path()


def executable_filename(pkg_id: PackageId, suffix: str = "") -> str:
    return f"{pkg_id.name}{suffix}{EXE_SUFFIX}"


def library_filename(pkg_id: PackageId) -> str:
    return (
        f"{DLL_PREFIX}{pkg_id.name}-{pkg_id.short_hash()}-"
        f"{pkg_id.version_or_default()}{DLL_SUFFIX}"
    )


def parse_library_filename(filename: str) -> tuple[str, str, str] | None:
    """Split ``lib<name>-<hash>-<version><suffix>`` into its parts."""
    if not filename.startswith(DLL_PREFIX) or not filename.endswith(DLL_SUFFIX):
        return None
    stem = filename[len(DLL_PREFIX):len(filename) - len(DLL_SUFFIX)]
    match = _LIBRARY_STEM.fullmatch(stem)
    if match is None:
        return None
    return match["name"], match["hash"], match["version"]


def built_executable_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path | None:
    return _existing(build_pkg_id_in_workspace(pkg_id, workspace) / executable_filename(pkg_id))


def built_test_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path | None:
    return _existing(
        build_pkg_id_in_workspace(pkg_id, workspace) / executable_filename(pkg_id, "test")
    )


def built_bench_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path | None:
    return _existing(
        build_pkg_id_in_workspace(pkg_id, workspace) / executable_filename(pkg_id, "bench")
    )


def built_library_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path | None:
    return _existing(build_pkg_id_in_workspace(pkg_id, workspace) / library_filename(pkg_id))


def target_executable_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path:
    return workspace.bin / executable_filename(pkg_id)


def target_library_in_workspace(pkg_id: PackageId, workspace: Workspace) -> Path:
    """Directory that receives the package's installed library."""
    return workspace.lib / pkg_id.relative_path()


def uninstall_package_from(workspace: Workspace, pkg_id: PackageId) -> list[Path]:
    """Remove the installed executable and library of *pkg_id*; return what was removed."""
    removed: list[Path] = []
    executable = target_executable_in_workspace(pkg_id, workspace)
    if executable.is_file():
        executable.unlink()
        removed.append(executable)
    library = target_library_in_workspace(pkg_id, workspace) / library_filename(pkg_id)
    if library.is_file():
        library.unlink()
        removed.append(library)
        lib_dir = library.parent
        if lib_dir.is_dir() and not any(lib_dir.iterdir()):
            shutil.rmtree(lib_dir)
    return removed


def _existing(path: Path) -> Path | None:
    return path if path.is_file() else None


__all__ = [
    "DLL_PREFIX",
    "DLL_SUFFIX",
    "EXE_SUFFIX",
    "build_pkg_id_in_workspace",
    "built_bench_in_workspace",
    "built_executable_in_workspace",
    "built_library_in_workspace",
    "built_test_in_workspace",
    "executable_filename",
    "library_filename",
    "parse_library_filename",
    "target_executable_in_workspace",
    "target_library_in_workspace",
    "uninstall_package_from",
]
