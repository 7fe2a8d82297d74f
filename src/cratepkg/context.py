"""Build configuration threaded explicitly through every operation."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from cratepkg.errors import BadFlag

SEARCH_PATH_ENV = "CRATEPKG_PATH"
SYSROOT_ENV = "CRATEPKG_SYSROOT"
DEFAULT_WORKSPACE_DIRNAME = ".cratepkg"


class OutputMode(StrEnum):
    """How far compilation proceeds."""

    LINK = "link"
    NO_LINK = "no-link"
    NO_TRANS = "no-trans"
    PRETTY = "pretty"
    PARSE_ONLY = "parse-only"
    ASSEMBLY = "assembly"
    LLVM_ASSEMBLY = "llvm-assembly"
    LLVM_BITCODE = "llvm-bitcode"


@dataclass(frozen=True, slots=True)
class CompilerFlags:
    linker: str | None = None
    link_args: str | None = None
    opt_level: int = 0
    output_mode: OutputMode = OutputMode.LINK
    save_temps: bool = False
    target: str | None = None
    target_cpu: str | None = None
    experimental_features: tuple[str, ...] = ()

    def to_args(self) -> list[str]:
        args: list[str] = []
        if self.linker:
            args.extend(["--linker", self.linker])
        if self.link_args:
            args.extend(["--link-args", self.link_args])
        if self.opt_level:
            args.append(f"--opt-level={self.opt_level}")
        match self.output_mode:
            case OutputMode.LINK:
                pass
            case OutputMode.ASSEMBLY:
                args.append("-S")
            case OutputMode.LLVM_ASSEMBLY:
                args.extend(["-S", "--emit-llvm"])
            case OutputMode.LLVM_BITCODE:
                args.append("--emit-llvm")
            case _:
                args.append(f"--{self.output_mode.value}")
        if self.save_temps:
            args.append("--save-temps")
        if self.target:
            args.extend(["--target", self.target])
        if self.target_cpu:
            args.extend(["--target-cpu", self.target_cpu])
        for feature in self.experimental_features:
            args.extend(["-Z", feature])
        return args


@dataclass(frozen=True, slots=True)
class Context:
    """Process-wide settings, read once at startup and passed down explicitly."""

    search_path: tuple[Path, ...] = ()
    cfgs: tuple[str, ...] = ()
    flags: CompilerFlags = field(default_factory=CompilerFlags)
    use_path_hack: bool = False
    sysroot: Path = field(default_factory=lambda: Path(os.sep))

    @classmethod
    def from_env(
        cls,
        *,
        environ: Mapping[str, str] | None = None,
        home: Path | None = None,
        include_home: bool = True,
        cfgs: Sequence[str] = (),
        flags: CompilerFlags | None = None,
        use_path_hack: bool = False,
        sysroot: Path | None = None,
    ) -> Context:
        """Build a context from ``CRATEPKG_PATH`` plus the per-user default workspace."""
        env = os.environ if environ is None else environ
        entries = [Path(p) for p in env.get(SEARCH_PATH_ENV, "").split(os.pathsep) if p]
        if include_home:
            home_dir = home if home is not None else Path.home()
            default_ws = home_dir / DEFAULT_WORKSPACE_DIRNAME
            if default_ws not in entries:
                entries.append(default_ws)
        if sysroot is None:
            sysroot = Path(env[SYSROOT_ENV]) if env.get(SYSROOT_ENV) else Path(os.sep)
        return cls(
            search_path=tuple(entries),
            cfgs=tuple(cfgs),
            flags=flags or CompilerFlags(),
            use_path_hack=use_path_hack,
            sysroot=sysroot,
        )


LINKING_COMMANDS = frozenset({"build", "install"})
COMPILING_COMMANDS = frozenset({"build", "install", "test"})


def flags_forbidden_for_cmd(
    flags: CompilerFlags,
    cfgs: Sequence[str],
    cmd: str,
    user_supplied_opt_level: bool,
) -> None:
    """Reject compiler flags that make no sense for *cmd*."""
    if (flags.linker or flags.link_args) and cmd not in LINKING_COMMANDS:
        raise BadFlag(
            "--linker and --link-args are only valid for build and install.",
            context={"command": cmd},
        )
    if cfgs and cmd not in COMPILING_COMMANDS:
        raise BadFlag(
            "--cfg is only valid for build, install, and test.",
            context={"command": cmd},
        )
    if user_supplied_opt_level and cmd not in COMPILING_COMMANDS:
        raise BadFlag(
            "-O and --opt-level are only valid for build, install, and test.",
            context={"command": cmd},
        )
    if flags.output_mode is not OutputMode.LINK and cmd != "build":
        raise BadFlag(
            f"--{flags.output_mode.value} is only valid for build.",
            context={"command": cmd},
        )


def merge_cfgs(*groups: Sequence[str]) -> list[str]:
    """Union of config flags, keeping first-seen order and dropping duplicates."""
    seen: dict[str, None] = {}
    for group in groups:
        for cfg in group:
            seen.setdefault(cfg, None)
    return list(seen)


__all__ = [
    "SEARCH_PATH_ENV",
    "CompilerFlags",
    "Context",
    "OutputMode",
    "flags_forbidden_for_cmd",
    "merge_cfgs",
]
