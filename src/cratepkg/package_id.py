"""Package identifiers: logical path, short name, and optional version."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from cratepkg.errors import MalformedIdentifier

VERSION_SEPARATOR = "#"
DEFAULT_VERSION = "0.0"


@dataclass(frozen=True, slots=True)
class PackageId:
    """Identifies a package by its logical path and optional version tag.

    Two identifiers compare equal when their path and version match; the
    short ``name`` is derived from the last path segment and does not take
    part in equality.
    """

    path: str
    version: str | None = None
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        path = self.path.strip("/")
        if not path:
            raise MalformedIdentifier(
                "Package identifier has an empty path.",
                hint="Pass an identifier such as `foo` or `github.com/user/foo#1.0`.",
                context={"identifier": self.path},
            )
        if VERSION_SEPARATOR in path:
            raise MalformedIdentifier(
                "Package path may not contain a version separator.",
                context={"identifier": self.path},
            )
        if self.version is not None and (not self.version or VERSION_SEPARATOR in self.version):
            raise MalformedIdentifier(
                "Package version tag is malformed.",
                context={"identifier": self.path, "version": self.version},
            )
        object.__setattr__(self, "path", path)
        if not self.name:
            object.__setattr__(self, "name", PurePosixPath(path).name)

    @classmethod
    def parse(cls, text: str) -> PackageId:
        """Parse ``path`` or ``path#version``."""
        path, sep, version = text.partition(VERSION_SEPARATOR)
        if not path.strip("/"):
            raise MalformedIdentifier(
                "Package identifier has an empty path.",
                context={"identifier": text},
            )
        if sep and not version:
            raise MalformedIdentifier(
                "Package identifier has an empty version after `#`.",
                context={"identifier": text},
            )
        return cls(path=path, version=version or None)

    def to_display_string(self) -> str:
        if self.version is None:
            return self.path
        return f"{self.path}{VERSION_SEPARATOR}{self.version}"

    def __str__(self) -> str:
        return self.to_display_string()

    def install_tag(self) -> str:
        """Cache tag keying install memoization for this identifier."""
        return f"install({self.to_display_string()})"

    def version_or_default(self) -> str:
        return self.version if self.version is not None else DEFAULT_VERSION

    def short_hash(self) -> str:
        digest = hashlib.sha256(self.to_display_string().encode("utf-8")).hexdigest()
        return digest[:8]

    def relative_path(self) -> PurePosixPath:
        return PurePosixPath(self.path)


def script_tag(script_path: object) -> str:
    """Cache tag for compiling a package's build script."""
    return f"build_package_script({script_path})"


__all__ = ["DEFAULT_VERSION", "PackageId", "script_tag"]
