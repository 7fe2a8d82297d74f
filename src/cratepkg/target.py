"""Build-unit roles and build strategies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum
from pathlib import PurePath

CRATE_EXTENSION = ".rs"
PACKAGE_SCRIPT_NAME = f"pkg{CRATE_EXTENSION}"


class UnitRole(StrEnum):
    LIBRARY = "library"
    EXECUTABLE = "executable"
    TEST = "test"
    BENCHMARK = "benchmark"


ROLE_FILENAMES: dict[str, UnitRole] = {
    f"lib{CRATE_EXTENSION}": UnitRole.LIBRARY,
    f"main{CRATE_EXTENSION}": UnitRole.EXECUTABLE,
    f"test{CRATE_EXTENSION}": UnitRole.TEST,
    f"bench{CRATE_EXTENSION}": UnitRole.BENCHMARK,
}


def classify(path: str | PurePath) -> UnitRole | None:
    """Classify a unit by the file-name convention, or ``None`` when it matches none."""
    return ROLE_FILENAMES.get(PurePath(path).name)


def is_test(path: str | PurePath) -> bool:
    return classify(path) is UnitRole.TEST


class BuildType(Enum):
    MAYBE_CUSTOM = "maybe-custom"
    INFERRED = "inferred"


@dataclass(frozen=True, slots=True)
class Everything:
    pass


@dataclass(frozen=True, slots=True)
class TestsOnly:
    __test__ = False


@dataclass(frozen=True, slots=True)
class ExactlyOne:
    path: PurePath


Sources = Everything | TestsOnly | ExactlyOne


@dataclass(frozen=True, slots=True)
class WhatToBuild:
    build_type: BuildType = BuildType.MAYBE_CUSTOM
    sources: Sources = Everything()

    @property
    def allows_custom(self) -> bool:
        return self.build_type is BuildType.MAYBE_CUSTOM


__all__ = [
    "CRATE_EXTENSION",
    "PACKAGE_SCRIPT_NAME",
    "ROLE_FILENAMES",
    "BuildType",
    "Everything",
    "ExactlyOne",
    "Sources",
    "TestsOnly",
    "UnitRole",
    "WhatToBuild",
    "classify",
    "is_test",
]
