"""Command-line entry point.

``main`` is the failure boundary for every command: fatal errors raised
anywhere in the pipeline are reported and turned into an exit status.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TextIO

from cratepkg.cache import WorkCache
from cratepkg.compiler import CommandCompiler, CompilerDriver, InProcessCompiler
from cratepkg.context import CompilerFlags, Context, OutputMode, flags_forbidden_for_cmd
from cratepkg.errors import MalformedIdentifier, PkgError, exit_code_for
from cratepkg.install import InstallPipeline
from cratepkg.installed import is_installed, list_installed, uninstall
from cratepkg.observability import StructuredLogger
from cratepkg.orchestrator import BuildOrchestrator, init_workspace
from cratepkg.package_id import PackageId
from cratepkg.target import BuildType, Everything, ExactlyOne, TestsOnly, WhatToBuild
from cratepkg.workspace import WorkspaceResolver

COMMANDS = ("build", "clean", "install", "list", "test", "init", "uninstall")
WORKCACHE_FILENAME = "workcache.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cratepkg", description="Package manager and build tool")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("package", nargs="?", help="package id, e.g. foo or github.com/u/foo#1.0")
    parser.add_argument("--cfg", "-c", action="append", default=[], dest="cfgs")
    parser.add_argument("--rust-path-hack", "-r", action="store_true", dest="path_hack")
    parser.add_argument("--sysroot", type=Path)
    parser.add_argument("--opt-level", type=int, choices=(0, 1, 2, 3))
    parser.add_argument("-O", action="store_true", dest="optimize")
    parser.add_argument("--no-link", action="store_const", const=OutputMode.NO_LINK, dest="mode")
    parser.add_argument("--no-trans", action="store_const", const=OutputMode.NO_TRANS, dest="mode")
    parser.add_argument("--pretty", action="store_const", const=OutputMode.PRETTY, dest="mode")
    parser.add_argument("--parse-only", action="store_const", const=OutputMode.PARSE_ONLY, dest="mode")
    parser.add_argument("-S", "--assembly", action="store_true", dest="assembly")
    parser.add_argument("--emit-llvm", action="store_true")
    parser.add_argument("--linker")
    parser.add_argument("--link-args")
    parser.add_argument("--target")
    parser.add_argument("--target-cpu")
    parser.add_argument("-Z", action="append", default=[], dest="experimental")
    parser.add_argument("--save-temps", action="store_true")
    parser.add_argument("--only", help="build exactly one unit, relative to the package root")
    parser.add_argument("--compiler", default="rustc", help="compiler executable, or `inprocess`")
    parser.add_argument("--git-substitute", type=Path,
                        help="directory to build from if the git fallback clone fails")
    return parser


def flags_from_args(args: argparse.Namespace) -> tuple[CompilerFlags, bool]:
    mode = args.mode or OutputMode.LINK
    if args.emit_llvm and args.assembly:
        mode = OutputMode.LLVM_ASSEMBLY
    elif args.assembly:
        mode = OutputMode.ASSEMBLY
    elif args.emit_llvm:
        mode = OutputMode.LLVM_BITCODE
    user_supplied_opt_level = args.opt_level is not None or args.optimize
    opt_level = args.opt_level if args.opt_level is not None else (2 if args.optimize else 0)
    flags = CompilerFlags(
        linker=args.linker,
        link_args=args.link_args,
        opt_level=opt_level,
        output_mode=mode,
        save_temps=args.save_temps,
        target=args.target,
        target_cpu=args.target_cpu,
        experimental_features=tuple(args.experimental),
    )
    return flags, user_supplied_opt_level


def driver_for(name: str) -> CompilerDriver:
    if name == "inprocess":
        return InProcessCompiler()
    return CommandCompiler(tool=name)


def main(
    argv: Sequence[str] | None = None,
    *,
    cwd: Path | None = None,
    stream: TextIO | None = None,
    context: Context | None = None,
) -> int:
    out = stream or sys.stderr
    logger = StructuredLogger(stream=out)
    args = build_parser().parse_args(argv)
    try:
        flags, user_supplied_opt_level = flags_from_args(args)
        flags_forbidden_for_cmd(flags, args.cfgs, args.command, user_supplied_opt_level)
        if context is None:
            context = Context.from_env(
                cfgs=args.cfgs,
                flags=flags,
                use_path_hack=args.path_hack,
                sysroot=args.sysroot,
            )
        run(args, context, cwd or Path.cwd(), logger, out)
    except PkgError as exc:
        logger.error(args.command, str(exc), code=exc.code)
        return exit_code_for(exc)
    except Exception as exc:
        logger.error(args.command, f"{type(exc).__name__}: {exc}")
        return exit_code_for(exc)
    return 0


def run(
    args: argparse.Namespace,
    context: Context,
    cwd: Path,
    logger: StructuredLogger,
    out: TextIO,
) -> None:
    orchestrator = _orchestrator(args, context, logger)
    resolver = orchestrator.resolver
    match args.command:
        case "build":
            orchestrator.build_args(args.package, _what(args, default=Everything()), cwd)
        case "install":
            InstallPipeline(orchestrator, orchestrator.cache, logger).install_args(
                args.package, cwd, _what(args, default=Everything())
            )
        case "test":
            pkg_id, workspace = orchestrator.build_args(args.package, _what(args, default=TestsOnly()), cwd)
            orchestrator.test(pkg_id, workspace)
        case "clean":
            if args.package is None:
                found = resolver.cwd_to_workspace(cwd)
                if found is None:
                    logger.warn("clean", "not inside a workspace package; nothing to clean")
                    return
                workspace, pkg_id = found
            else:
                pkg_id = PackageId.parse(args.package)
                containing = resolver.workspaces_containing(pkg_id)
                workspace = containing[0] if containing else resolver.default_workspace()
            orchestrator.clean(workspace, pkg_id)
        case "list":
            out.write("Installed packages:\n")
            for pkg_id in list_installed(resolver.search_path):
                out.write(f"{pkg_id}\n")
        case "init":
            init_workspace(cwd)
        case "uninstall":
            if args.package is None:
                raise MalformedIdentifier("uninstall needs a package id.")
            pkg_id = PackageId.parse(args.package)
            if not is_installed(resolver.search_path, pkg_id):
                logger.warn("uninstall",
                            f"Package {pkg_id} doesn't seem to be installed! Doing nothing.")
                return
            uninstall(resolver.search_path, pkg_id, logger)


def _orchestrator(args: argparse.Namespace, context: Context, logger: StructuredLogger) -> BuildOrchestrator:
    default_ws = WorkspaceResolver(context.search_path).default_workspace()
    return BuildOrchestrator(
        context,
        driver_for(args.compiler),
        WorkCache(default_ws.build / WORKCACHE_FILENAME),
        logger,
        checkout_substitute=args.git_substitute,
    )


def _what(args: argparse.Namespace, *, default: Everything | TestsOnly) -> WhatToBuild:
    if args.only:
        return WhatToBuild(BuildType.INFERRED, ExactlyOne(PurePosixPath(args.only)))
    return WhatToBuild(BuildType.MAYBE_CUSTOM, default)


if __name__ == "__main__":
    raise SystemExit(main())
