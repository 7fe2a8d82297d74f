"""Read-only view of packages installed across the workspace search path."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

from cratepkg.observability import StructuredLogger
from cratepkg.package_id import DEFAULT_VERSION, PackageId
from cratepkg.paths import parse_library_filename, uninstall_package_from
from cratepkg.workspace import Workspace

Visitor = Callable[[PackageId], bool]


def for_each_installed(search_path: Iterable[Workspace], visitor: Visitor) -> bool:
    """Call *visitor* for every installed library; stop early when it returns False."""
    for workspace in search_path:
        if not workspace.lib.is_dir():
            continue
        for dirpath, dirnames, filenames in os.walk(workspace.lib):
            dirnames.sort()
            for filename in sorted(filenames):
                pkg_id = _installed_id(workspace, Path(dirpath), filename)
                if pkg_id is not None and not visitor(pkg_id):
                    return False
    return True


def list_installed(search_path: Iterable[Workspace]) -> list[PackageId]:
    found: list[PackageId] = []

    def collect(pkg_id: PackageId) -> bool:
        found.append(pkg_id)
        return True

    for_each_installed(search_path, collect)
    return found


def is_installed(search_path: Iterable[Workspace], pkg_id: PackageId) -> bool:
    def differs(candidate: PackageId) -> bool:
        if candidate.path != pkg_id.path:
            return True
        return pkg_id.version is not None and candidate.version != pkg_id.version

    return not for_each_installed(search_path, differs)


def uninstall(
    search_path: Iterable[Workspace],
    pkg_id: PackageId,
    logger: StructuredLogger,
) -> list[Path]:
    removed: list[Path] = []
    for workspace in search_path:
        files = uninstall_package_from(workspace, pkg_id)
        if files:
            logger.note(
                "uninstall",
                f"Uninstalled package {pkg_id} (was installed in {workspace})",
                package=str(pkg_id),
            )
        removed.extend(files)
    return removed


def _installed_id(workspace: Workspace, directory: Path, filename: str) -> PackageId | None:
    parts = parse_library_filename(filename)
    if parts is None or directory == workspace.lib:
        return None
    _, _, version = parts
    rel = PurePosixPath(directory.relative_to(workspace.lib).as_posix())
    return PackageId(path=str(rel), version=None if version == DEFAULT_VERSION else version)


__all__ = ["for_each_installed", "is_installed", "list_installed", "uninstall"]
