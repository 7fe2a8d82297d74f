"""Located package sources and their discovered build units."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from cratepkg.errors import AmbiguousRole, PackageNotFound, UnresolvedTarget
from cratepkg.package_id import PackageId
from cratepkg.target import PACKAGE_SCRIPT_NAME, UnitRole, classify
from cratepkg.workspace import Workspace

UnitFilter = Callable[[str], bool]

# Directories never searched for units.
_SKIPPED_DIRS = frozenset({".git", ".hg", "build"})


@dataclass(frozen=True, slots=True)
class Unit:
    """A compilable unit; ``file`` is relative to the package's start directory."""

    ordinal: int
    file: PurePosixPath


@dataclass(slots=True)
class SourceTree:
    source_workspace: Workspace
    destination_workspace: Workspace
    start_dir: Path
    id: PackageId
    libs: list[Unit] = field(default_factory=list)
    mains: list[Unit] = field(default_factory=list)
    tests: list[Unit] = field(default_factory=list)
    benchs: list[Unit] = field(default_factory=list)

    @classmethod
    def locate(
        cls,
        source_workspace: Workspace,
        destination_workspace: Workspace,
        infer: bool,
        pkg_id: PackageId,
    ) -> SourceTree:
        """Find *pkg_id* under *source_workspace*.

        ``<ws>/src/<path>`` is the conventional location; ``<ws>/<path>`` is
        accepted for sources kept outside the workspace layout, such as a git
        working copy awaiting the fallback clone. With *infer* set, a package
        named after the directory may live directly at the workspace root.
        """
        candidates = [
            source_workspace.package_dir(pkg_id),
            source_workspace.root / pkg_id.relative_path(),
        ]
        if infer and source_workspace.root.name == pkg_id.name:
            candidates.append(source_workspace.root)
        for candidate in candidates:
            if candidate.is_dir():
                return cls(
                    source_workspace=source_workspace,
                    destination_workspace=destination_workspace,
                    start_dir=candidate,
                    id=pkg_id,
                )
        raise PackageNotFound(
            f"Package {pkg_id} not found in workspace {source_workspace}.",
            hint="Check the package path or add its workspace to CRATEPKG_PATH.",
            context={
                "package": str(pkg_id),
                "workspace": str(source_workspace),
                "searched": ", ".join(str(c) for c in candidates),
            },
        )

    def units_for(self, role: UnitRole) -> list[Unit]:
        match role:
            case UnitRole.LIBRARY:
                return self.libs
            case UnitRole.EXECUTABLE:
                return self.mains
            case UnitRole.TEST:
                return self.tests
            case UnitRole.BENCHMARK:
                return self.benchs

    def units(self) -> Iterator[tuple[UnitRole, Unit]]:
        """All units in role order: libraries, executables, tests, benchmarks."""
        for role in UnitRole:
            for unit in self.units_for(role):
                yield role, unit

    def has_units(self) -> bool:
        return any(True for _ in self.units())

    def discover_units(self, predicate: UnitFilter | None = None) -> None:
        """Walk the start directory once, classifying files by naming convention."""
        ordinal = 0
        for dirpath, dirnames, filenames in os.walk(self.start_dir):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIPPED_DIRS)
            for filename in sorted(filenames):
                role = classify(filename)
                if role is None:
                    continue
                rel = PurePosixPath(Path(dirpath, filename).relative_to(self.start_dir).as_posix())
                if predicate is not None and not predicate(str(rel)):
                    continue
                self.units_for(role).append(Unit(ordinal=ordinal, file=rel))
                ordinal += 1

    def push_explicit_unit(self, role: UnitRole | None, path: str | PurePosixPath) -> UnitRole:
        """Add one explicitly requested unit; the role defaults to the name convention."""
        resolved = role or classify(path)
        if resolved is None:
            raise AmbiguousRole(
                f"Cannot determine whether {path} is a library, executable, test, or benchmark.",
                hint="Name the file lib.rs, main.rs, test.rs, or bench.rs.",
                context={"package": str(self.id), "path": str(path)},
            )
        self.units_for(resolved).append(Unit(ordinal=0, file=PurePosixPath(path)))
        return resolved

    def validate_units(self) -> None:
        for role, unit in self.units():
            if not (self.start_dir / unit.file).is_file():
                raise UnresolvedTarget(
                    f"Build unit {unit.file} does not exist in package {self.id}.",
                    context={
                        "package": str(self.id),
                        "role": role.value,
                        "start_dir": str(self.start_dir),
                    },
                )

    def build_script_path(self) -> Path | None:
        candidate = self.start_dir / PACKAGE_SCRIPT_NAME
        return candidate if candidate.is_file() else None

    def build_workspace(self) -> Workspace:
        """Workspace that holds build output for this tree."""
        return self.destination_workspace

    def input_files(self) -> list[Path]:
        return [self.start_dir / unit.file for _, unit in self.units()]

    def __str__(self) -> str:
        return f"{self.id} in {self.start_dir} (destination {self.destination_workspace})"


__all__ = ["SourceTree", "Unit", "UnitFilter"]
