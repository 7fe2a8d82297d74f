"""Compiling and running a package's custom build script.

A package with a ``pkg.rs`` at its root supplies its own build logic. The
script is compiled once into ``<build_dir>/pkg#script`` (memoized by the cache) and
then always run twice, as ``<exe> <sysroot> install`` followed by
``<exe> <sysroot> configs``. The second run reports extra config flags on
standard output, separated by whitespace.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cratepkg.cache import Exec, WorkCache, digest_file_with_date, digest_only_date
from cratepkg.compiler import CompileRequest, CompilerDriver, ParsedUnit, Session
from cratepkg.errors import CustomBuildFailed
from cratepkg.observability import StructuredLogger
from cratepkg.package_id import PackageId, script_tag
from cratepkg.paths import build_pkg_id_in_workspace
from cratepkg.process import ExitStatus, run_output, run_status
from cratepkg.workspace import Workspace


@dataclass(slots=True)
class BuildScript:
    id: PackageId
    script_path: Path
    build_dir: Path
    session: Session
    parsed: ParsedUnit | None

    @classmethod
    def parse(
        cls,
        driver: CompilerDriver,
        session: Session,
        script: Path,
        workspace: Workspace,
        pkg_id: PackageId,
    ) -> BuildScript:
        parsed = driver.parse_and_expand(session, script)
        return cls(
            id=pkg_id,
            script_path=script,
            build_dir=build_pkg_id_in_workspace(pkg_id, workspace),
            session=session,
            parsed=parsed,
        )

    def build_custom(self, driver: CompilerDriver, exec: Exec) -> str:
        """Compile the script to an executable and discover it as an output."""
        request = CompileRequest(
            id=self.id,
            source=self.script_path,
            role=None,
            build_dir=self.build_dir,
            session=self.session,
        )
        exe = driver.compile_unit(request, exec, self.parsed)
        self.parsed = None
        exec.discover_output("binary", str(exe), digest_only_date(exe))
        return str(exe)


@dataclass(frozen=True, slots=True)
class ScriptResult:
    cfgs: list[str]
    install_status: ExitStatus
    configs_status: ExitStatus | None


class BuildScriptRunner:
    def __init__(
        self,
        driver: CompilerDriver,
        cache: WorkCache,
        logger: StructuredLogger,
    ) -> None:
        self.driver = driver
        self.cache = cache
        self.logger = logger

    def compile(
        self,
        session: Session,
        script: Path,
        workspace: Workspace,
        pkg_id: PackageId,
    ) -> Path:
        with self.cache.prepare(script_tag(script)) as prep:
            prep.declare_input("file", str(script), digest_file_with_date(script))

            def body(exec: Exec) -> str:
                build_script = BuildScript.parse(self.driver, session, script, workspace, pkg_id)
                return build_script.build_custom(self.driver, exec)

            exe = prep.exec(body)
        self.logger.debug(
            "build_script",
            f"package script for {pkg_id} compiled to {exe}",
            package=str(pkg_id),
            phase="compile",
        )
        return Path(exe)

    def run_custom(self, exe: Path, sysroot: Path, pkg_id: PackageId) -> ScriptResult:
        """Run the install phase, then the configs phase if install succeeded."""
        package = str(pkg_id)
        self.logger.debug("build_script", f"running {exe} {sysroot} install",
                          package=package, phase="install")
        try:
            install_status = run_status([exe, sysroot, "install"])
        except OSError as exc:
            raise CustomBuildFailed(
                f"Could not run the package script for {pkg_id}.",
                context={"package": package, "exe": str(exe), "error": str(exc)},
            ) from exc
        if not install_status.success:
            raise CustomBuildFailed(
                f"Error running custom build command for {pkg_id}.",
                hint="The package script's install step must exit successfully.",
                context={"package": package, "exe": str(exe), "status": str(install_status)},
            )

        self.logger.debug("build_script", f"running {exe} {sysroot} configs",
                          package=package, phase="configs")
        try:
            output = run_output([exe, sysroot, "configs"])
        except OSError as exc:
            self.logger.warn("build_script", f"could not query configs for {pkg_id}: {exc}",
                             package=package, phase="configs")
            return ScriptResult(cfgs=[], install_status=install_status, configs_status=None)
        if not output.status.success:
            self.logger.warn(
                "build_script",
                f"package script configs step for {pkg_id} failed with {output.status}; "
                "no extra config flags",
                package=package,
                phase="configs",
            )
            return ScriptResult(cfgs=[], install_status=install_status,
                                configs_status=output.status)
        return ScriptResult(
            cfgs=output.stdout.split(),
            install_status=install_status,
            configs_status=output.status,
        )


__all__ = ["BuildScript", "BuildScriptRunner", "ScriptResult"]
