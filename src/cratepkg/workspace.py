"""Workspace layout and search-path resolution."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from cratepkg.errors import NoWorkspaceConfigured
from cratepkg.package_id import PackageId
from cratepkg.target import UnitRole, classify

WORKSPACE_SUBDIRS = ("src", "lib", "bin", "build")


@dataclass(frozen=True, slots=True)
class Workspace:
    """A filesystem root with fixed ``src``/``lib``/``bin``/``build`` subdirectories."""

    root: Path

    @property
    def src(self) -> Path:
        return self.root / "src"

    @property
    def lib(self) -> Path:
        return self.root / "lib"

    @property
    def bin(self) -> Path:
        return self.root / "bin"

    @property
    def build(self) -> Path:
        return self.root / "build"

    def package_dir(self, pkg_id: PackageId) -> Path:
        return self.src / pkg_id.relative_path()

    def create_layout(self) -> None:
        for name in WORKSPACE_SUBDIRS:
            (self.root / name).mkdir(parents=True, exist_ok=True)

    def __str__(self) -> str:
        return str(self.root)


class WorkspaceResolver:
    """Searches an ordered list of workspace roots; the first entry has priority."""

    def __init__(self, search_path: Iterable[str | Path]) -> None:
        self.search_path: tuple[Workspace, ...] = tuple(
            Workspace(Path(entry).absolute()) for entry in search_path
        )

    def workspaces_containing(self, pkg_id: PackageId) -> list[Workspace]:
        return [ws for ws in self.search_path if ws.package_dir(pkg_id).is_dir()]

    def default_workspace(self) -> Workspace:
        if not self.search_path:
            raise NoWorkspaceConfigured(
                "No workspace is configured.",
                hint="Set CRATEPKG_PATH to one or more workspace directories.",
            )
        return self.search_path[0]

    def is_in_workspace(self, path: str | Path) -> bool:
        candidate = Path(path).absolute()
        return any(candidate == ws.root or ws.root in candidate.parents for ws in self.search_path)

    def is_search_path_member(self, workspace: Workspace) -> bool:
        return Workspace(workspace.root.absolute()) in self.search_path

    def determine_destination(
        self,
        cwd: str | Path,
        use_path_hack: bool,
        source_workspace: Workspace,
    ) -> Workspace:
        """Pick the install destination for a package found in *source_workspace*.

        With the path hack enabled and *cwd* outside every configured workspace,
        the working directory itself becomes an ad-hoc destination.
        """
        if use_path_hack and not self.is_in_workspace(cwd):
            return Workspace(Path(cwd).absolute())
        return source_workspace

    def cwd_to_workspace(self, cwd: str | Path) -> tuple[Workspace, PackageId] | None:
        """Return the workspace and package id when *cwd* lies inside ``<ws>/src/<pkg>``."""
        candidate = Path(cwd).absolute()
        for ws in self.search_path:
            src = ws.src.absolute()
            if candidate == src or src not in candidate.parents:
                continue
            rel = candidate.relative_to(src)
            return ws, PackageId(path=rel.as_posix())
        return None


def dir_has_crate_file(path: str | Path) -> bool:
    directory = Path(path)
    if not directory.is_dir():
        return False
    return any(
        classify(entry.name) in (UnitRole.LIBRARY, UnitRole.EXECUTABLE)
        for entry in directory.iterdir()
        if entry.is_file()
    )


__all__ = ["WORKSPACE_SUBDIRS", "Workspace", "WorkspaceResolver", "dir_has_crate_file"]
