"""Copying built artifacts into a destination workspace with recorded provenance."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from cratepkg.cache import Exec, WorkCache, digest_file_with_date, digest_only_date
from cratepkg.errors import CopyFailed
from cratepkg.observability import StructuredLogger
from cratepkg.orchestrator import BuildOrchestrator
from cratepkg.package_id import PackageId
from cratepkg.paths import (
    built_executable_in_workspace,
    built_library_in_workspace,
    target_executable_in_workspace,
    target_library_in_workspace,
)
from cratepkg.source import SourceTree
from cratepkg.target import WhatToBuild
from cratepkg.workspace import Workspace


@dataclass(slots=True)
class InstallManifest:
    installed_paths: list[Path] = field(default_factory=list)
    declared_inputs: list[tuple[str, str]] = field(default_factory=list)


class InstallPipeline:
    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        cache: WorkCache,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self.logger = logger or orchestrator.logger

    def install(self, tree: SourceTree, what: WhatToBuild | None = None) -> InstallManifest:
        """Build *tree*, then install its artifacts into the destination workspace."""
        what = what or WhatToBuild()
        outcome = self.orchestrator.build(tree, what)
        built = outcome.tree
        self.logger.debug("install", f"done building package source {built}",
                          package=str(built.id))

        manifest = InstallManifest()
        build_inputs: list[Path] = []
        for path in built.input_files():
            self.logger.debug("install", f"recording input: {path}", package=str(built.id))
            manifest.declared_inputs.append(("file", str(path)))
            build_inputs.append(path)

        installed = self.install_no_build(
            built.build_workspace(),
            build_inputs,
            built.destination_workspace,
            built.id,
        )
        manifest.installed_paths.extend(Path(p) for p in installed)
        self.logger.note(
            "install",
            f"Installed package {built.id} to {built.destination_workspace}",
            package=str(built.id),
        )
        return manifest

    def install_args(self, pkg: str | None, cwd: Path, what: WhatToBuild | None = None) -> list[InstallManifest]:
        """Install a package named on the command line, or the one in *cwd*."""
        if pkg is None:
            return [self.install(self.orchestrator.tree_from_cwd(cwd), what)]
        pkg_id = PackageId.parse(pkg)
        return [self.install(tree, what) for tree in self.orchestrator.trees_for(pkg_id, cwd)]

    def install_no_build(
        self,
        build_workspace: Workspace,
        build_inputs: Sequence[Path],
        destination_workspace: Workspace,
        pkg_id: PackageId,
    ) -> list[str]:
        """Copy the built executable and library of *pkg_id*; return installed paths."""
        maybe_executable = built_executable_in_workspace(pkg_id, build_workspace)
        maybe_library = built_library_in_workspace(pkg_id, build_workspace)
        target_exec = target_executable_in_workspace(pkg_id, destination_workspace)
        target_lib_dir = target_library_in_workspace(pkg_id, destination_workspace)
        self.logger.debug(
            "install",
            f"{pkg_id} comes from {build_workspace} with target {destination_workspace}",
            package=str(pkg_id),
            executable=str(maybe_executable),
            library=str(maybe_library),
        )
        artifacts = [a for a in (maybe_executable, maybe_library) if a is not None]

        with self.cache.prepare(pkg_id.install_tag()) as prep:
            for artifact in artifacts:
                prep.declare_input("binary", str(artifact), digest_only_date(artifact))

            def body(exec: Exec) -> list[str]:
                for artifact in artifacts:
                    exec.discover_input("binary", str(artifact), digest_only_date(artifact))
                for dependency in build_inputs:
                    exec.discover_input("file", str(dependency), digest_file_with_date(dependency))

                outputs: list[str] = []
                if maybe_executable is not None:
                    outputs.append(self._copy(maybe_executable, target_exec, exec))
                if maybe_library is not None:
                    outputs.append(
                        self._copy(maybe_library, target_lib_dir / maybe_library.name, exec)
                    )
                return outputs

            return prep.exec(body)

    def _copy(self, source: Path, destination: Path, exec: Exec) -> str:
        self.logger.debug("install", f"copying: {source} -> {destination}")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as exc:
            raise CopyFailed(
                f"Failed to install {source}.",
                context={"source": str(source), "destination": str(destination), "error": str(exc)},
            ) from exc
        exec.discover_output("binary", str(destination), digest_only_date(destination))
        return str(destination)


__all__ = ["InstallManifest", "InstallPipeline"]
