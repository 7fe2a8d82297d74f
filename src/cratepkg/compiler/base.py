"""Typed interfaces for the language compiler driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from cratepkg.cache import Exec
from cratepkg.context import CompilerFlags
from cratepkg.package_id import PackageId
from cratepkg.paths import EXE_SUFFIX, executable_filename, library_filename
from cratepkg.target import UnitRole

# Package names cannot contain "#", so this never collides with a package executable.
PACKAGE_SCRIPT_EXE = f"pkg#script{EXE_SUFFIX}"


@dataclass(frozen=True, slots=True)
class Session:
    """Compiler session settings for one build."""

    sysroot: Path
    flags: CompilerFlags = field(default_factory=CompilerFlags)


@dataclass(frozen=True, slots=True)
class ParsedUnit:
    """Front-end result for a single source file, opaque to the build pipeline."""

    source: Path
    text: str


@dataclass(frozen=True, slots=True)
class CompileRequest:
    """One unit to compile. ``role`` is ``None`` for a package build script."""

    id: PackageId
    source: Path
    role: UnitRole | None
    build_dir: Path
    session: Session
    cfgs: tuple[str, ...] = ()

    def output_path(self) -> Path:
        match self.role:
            case None:
                return self.build_dir / PACKAGE_SCRIPT_EXE
            case UnitRole.LIBRARY:
                return self.build_dir / library_filename(self.id)
            case UnitRole.EXECUTABLE:
                return self.build_dir / executable_filename(self.id)
            case UnitRole.TEST:
                return self.build_dir / executable_filename(self.id, "test")
            case UnitRole.BENCHMARK:
                return self.build_dir / executable_filename(self.id, "bench")


class CompilerDriver(Protocol):
    name: str

    def parse_and_expand(self, session: Session, source: Path) -> ParsedUnit:
        """Parse *source* and run macro expansion."""

    def compile_unit(
        self,
        request: CompileRequest,
        exec: Exec,
        parsed: ParsedUnit | None = None,
    ) -> Path:
        """Compile the requested unit and return the produced artifact path."""


__all__ = [
    "PACKAGE_SCRIPT_EXE",
    "CompileRequest",
    "CompilerDriver",
    "ParsedUnit",
    "Session",
]
