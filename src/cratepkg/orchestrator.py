"""Build orchestration for a single package.

``BuildOrchestrator.build`` walks one package through
ResolveSource -> MaybeGitFallback -> DetectScript -> (custom | inferred)
-> DelegateCompile. A package whose source lives in a git working copy
outside the configured workspaces is first cloned into the default
workspace and then built from there; the retry never falls back again.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from cratepkg.cache import Exec, WorkCache, digest_file_with_date, digest_only_date
from cratepkg.compiler import CompileRequest, CompilerDriver, Session
from cratepkg.context import Context, merge_cfgs
from cratepkg.errors import GitCheckoutFailed, PackageNotFound, TestsFailed, UnresolvedTarget
from cratepkg.observability import StructuredLogger
from cratepkg.package_id import PackageId
from cratepkg.paths import build_pkg_id_in_workspace, built_test_in_workspace
from cratepkg.process import run_status
from cratepkg.script import BuildScriptRunner
from cratepkg.source import SourceTree, Unit
from cratepkg.source_control import CheckoutFailed, SourceControlFallback, checkout_matches, is_git_dir
from cratepkg.target import Everything, ExactlyOne, TestsOnly, UnitRole, WhatToBuild, classify, is_test
from cratepkg.workspace import Workspace, WorkspaceResolver, dir_has_crate_file


@dataclass(slots=True)
class BuildOutcome:
    """Result of one build: the tree actually built and the merged config flags."""

    tree: SourceTree
    cfgs: list[str]
    custom: bool = False
    fallback_used: bool = False
    artifacts: list[Path] = field(default_factory=list)


class BuildOrchestrator:
    def __init__(
        self,
        context: Context,
        driver: CompilerDriver,
        cache: WorkCache,
        logger: StructuredLogger | None = None,
        *,
        checkout_substitute: Path | None = None,
    ) -> None:
        self.context = context
        self.driver = driver
        self.cache = cache
        self.logger = logger or StructuredLogger()
        self.checkout_substitute = checkout_substitute
        self.resolver = WorkspaceResolver(context.search_path)
        self.fallback = SourceControlFallback(self.resolver)
        self.scripts = BuildScriptRunner(driver, cache, self.logger)
        self.session = Session(sysroot=context.sysroot, flags=context.flags)

    # ── Source resolution ───────────────────────────────────────────

    def trees_for(self, pkg_id: PackageId, cwd: Path) -> list[SourceTree]:
        """Source trees for *pkg_id*, one per workspace that contains it.

        A git working copy at ``<cwd>/<path>`` outside every workspace is used
        when no workspace has the package; the build then clones it.
        """
        workspaces = self.resolver.workspaces_containing(pkg_id)
        self.logger.debug(
            "resolve",
            f"package {pkg_id} found in {len(workspaces)} workspaces",
            package=str(pkg_id),
        )
        if workspaces:
            return [
                SourceTree.locate(
                    ws,
                    self.resolver.determine_destination(cwd, self.context.use_path_hack, ws),
                    self.context.use_path_hack,
                    pkg_id,
                )
                for ws in workspaces
            ]
        default_ws = self.resolver.default_workspace()
        external = Workspace(cwd.absolute())
        if not self.resolver.is_in_workspace(cwd) and is_git_dir(external.root / pkg_id.path):
            return [SourceTree.locate(external, default_ws, False, pkg_id)]
        return [SourceTree.locate(default_ws, default_ws, False, pkg_id)]

    def tree_from_cwd(self, cwd: Path) -> SourceTree:
        """Infer the package to build from the working directory."""
        found = self.resolver.cwd_to_workspace(cwd)
        if found is not None:
            ws, pkg_id = found
            return SourceTree.locate(ws, ws, False, pkg_id)
        if dir_has_crate_file(cwd):
            pkg_id = PackageId(path=cwd.absolute().name)
            return SourceTree.locate(
                Workspace(cwd.absolute()),
                self.resolver.default_workspace(),
                True,
                pkg_id,
            )
        raise PackageNotFound(
            "No package found in the current directory.",
            hint="Run inside <workspace>/src/<package>, or pass a package id.",
            context={"cwd": str(cwd)},
        )

    def build_args(
        self,
        pkg: str | None,
        what: WhatToBuild,
        cwd: Path,
    ) -> tuple[PackageId, Workspace]:
        """Build a package named on the command line, or the one in *cwd*.

        When the id resolves in several workspaces each is built, and the
        destination of the last one is returned.
        """
        if pkg is None:
            outcome = self.build(self.tree_from_cwd(cwd), what)
            return outcome.tree.id, outcome.tree.destination_workspace
        pkg_id = PackageId.parse(pkg)
        destination = self.resolver.default_workspace()
        for tree in self.trees_for(pkg_id, cwd):
            destination = self.build(tree, what).tree.destination_workspace
        return pkg_id, destination

    # ── Build state machine ─────────────────────────────────────────

    def build(self, tree: SourceTree, what: WhatToBuild, *, allow_fallback: bool = True) -> BuildOutcome:
        package = str(tree.id)
        self.logger.debug(
            "build",
            f"building {tree}",
            package=package,
            phase="resolve",
            what=repr(what),
        )

        if allow_fallback and self.fallback.applies(tree.source_workspace, tree.id):
            return self._build_from_clone(tree, what)
        if allow_fallback:
            self._check_version(tree)

        script = tree.build_script_path()
        custom = False
        script_cfgs: list[str] = []
        if script is not None and what.allows_custom:
            exe = self.scripts.compile(self.session, script, tree.build_workspace(), tree.id)
            script_cfgs = self.scripts.run_custom(exe, self.context.sysroot, tree.id).cfgs
            custom = True
        elif script is not None:
            self.logger.debug("build", "there is a package script, but ignoring it",
                              package=package, phase="detect_script")
        else:
            self.logger.debug("build", "no package script, continuing",
                              package=package, phase="detect_script")

        cfgs = merge_cfgs(script_cfgs, self.context.cfgs)
        if custom:
            return BuildOutcome(tree=tree, cfgs=cfgs, custom=True)

        self._select_units(tree, what)
        tree.validate_units()
        artifacts = [self._compile_unit(tree, role, unit, cfgs) for role, unit in tree.units()]
        return BuildOutcome(tree=tree, cfgs=cfgs, artifacts=artifacts)

    def _build_from_clone(self, tree: SourceTree, what: WhatToBuild) -> BuildOutcome:
        pkg_id = tree.id
        default_ws = self.resolver.default_workspace()
        outcome = self.fallback.run(tree.source_workspace, pkg_id)
        if isinstance(outcome, CheckoutFailed):
            if self.checkout_substitute is None:
                raise GitCheckoutFailed(
                    f"Failed to check out {pkg_id} into the default workspace.",
                    path=pkg_id.path,
                    out_dir=str(outcome.out_dir),
                    hint="Fix the source repository, or supply a substitute directory.",
                    context={"reason": outcome.reason},
                )
            self.logger.warn(
                "git_fallback",
                f"checkout of {pkg_id} failed; continuing with {self.checkout_substitute}",
                package=str(pkg_id),
                phase="fallback",
            )
            retry = SourceTree(
                source_workspace=default_ws,
                destination_workspace=default_ws,
                start_dir=self.checkout_substitute,
                id=pkg_id,
            )
        else:
            self.logger.note(
                "git_fallback",
                f"cloned {pkg_id} into {outcome.path}",
                package=str(pkg_id),
                phase="fallback",
            )
            retry = SourceTree.locate(default_ws, default_ws, False, pkg_id)
        result = self.build(retry, what, allow_fallback=False)
        result.fallback_used = True
        return result

    def _check_version(self, tree: SourceTree) -> None:
        """Refuse to build a git working copy that is not at the requested version."""
        version = tree.id.version
        if version is None or not is_git_dir(tree.start_dir):
            return
        if not checkout_matches(tree.start_dir, version):
            raise GitCheckoutFailed(
                f"Working copy of {tree.id} is not checked out at version {version}.",
                path=tree.id.path,
                out_dir=str(tree.start_dir),
                hint="Check out the requested version there, or remove the working copy.",
            )

    def _select_units(self, tree: SourceTree, what: WhatToBuild) -> None:
        match what.sources:
            case Everything():
                tree.discover_units()
            case TestsOnly():
                tree.discover_units(is_test)
            case ExactlyOne(path=path):
                role = classify(path)
                if role is None:
                    raise UnresolvedTarget(
                        f"Not building any units for {path}: it is not a library, "
                        "executable, test, or benchmark.",
                        context={"package": str(tree.id), "path": str(path)},
                    )
                tree.push_explicit_unit(role, PurePosixPath(path))
        if not tree.has_units():
            self.logger.warn("build", f"couldn't infer any units to build for {tree.id}",
                             package=str(tree.id), phase="discover")

    def _compile_unit(self, tree: SourceTree, role: UnitRole, unit: Unit, cfgs: list[str]) -> Path:
        source = tree.start_dir / unit.file
        build_dir = build_pkg_id_in_workspace(tree.id, tree.build_workspace())
        request = CompileRequest(
            id=tree.id,
            source=source,
            role=role,
            build_dir=build_dir,
            session=self.session,
            cfgs=tuple(cfgs),
        )
        with self.cache.prepare(f"compile({source})") as prep:
            prep.declare_input("file", str(source), digest_file_with_date(source))
            prep.declare_input("config", "cfgs", " ".join(cfgs))
            prep.declare_input("config", "flags", " ".join(self.session.flags.to_args()))
            prep.declare_input("config", "build_dir", str(build_dir))

            def body(exec: Exec) -> str:
                output = self.driver.compile_unit(request, exec)
                exec.discover_output("binary", str(output), digest_only_date(output))
                return str(output)

            artifact = Path(prep.exec(body))
        self.logger.debug("compile", f"{role.value} {unit.file} -> {artifact}",
                          package=str(tree.id), phase="compile")
        return artifact

    # ── Other commands ──────────────────────────────────────────────

    def clean(self, workspace: Workspace, pkg_id: PackageId) -> None:
        build_dir = build_pkg_id_in_workspace(pkg_id, workspace)
        self.logger.note("clean", f"Cleaning package {pkg_id} (removing directory {build_dir})",
                         package=str(pkg_id))
        if build_dir.exists():
            shutil.rmtree(build_dir)
            self.logger.note("clean", f"Removed directory {build_dir}", package=str(pkg_id))
        self.logger.note("clean", f"Cleaned package {pkg_id}", package=str(pkg_id))

    def test(self, pkg_id: PackageId, workspace: Workspace) -> None:
        test_exe = built_test_in_workspace(pkg_id, workspace)
        if test_exe is None:
            raise TestsFailed(
                f"Test executable for {pkg_id} in workspace {workspace} wasn't built.",
                context={"package": str(pkg_id), "workspace": str(workspace)},
            )
        self.logger.debug("test", f"running {test_exe} --test", package=str(pkg_id))
        try:
            status = run_status([test_exe, "--test"])
        except OSError as exc:
            raise TestsFailed(
                f"Could not run the test executable for {pkg_id}.",
                context={"package": str(pkg_id), "exe": str(test_exe), "error": str(exc)},
            ) from exc
        if not status.success:
            raise TestsFailed(
                "Some tests failed.",
                context={"package": str(pkg_id), "status": str(status)},
            )


def init_workspace(cwd: Path) -> Workspace:
    workspace = Workspace(cwd.absolute())
    workspace.create_layout()
    return workspace


__all__ = ["BuildOrchestrator", "BuildOutcome", "init_workspace"]
