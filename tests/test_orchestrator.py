import subprocess
from pathlib import Path, PurePosixPath

import pytest

from cratepkg.cache import WorkCache
from cratepkg.compiler import InProcessCompiler
from cratepkg.context import Context
from cratepkg.errors import (
    CompileFailed,
    CustomBuildFailed,
    GitCheckoutFailed,
    PackageNotFound,
    TestsFailed,
    UnresolvedTarget,
)
from cratepkg.observability import StructuredLogger
from cratepkg.orchestrator import BuildOrchestrator, init_workspace
from cratepkg.package_id import PackageId
from cratepkg.source import SourceTree
from cratepkg.target import BuildType, Everything, ExactlyOne, TestsOnly, UnitRole, WhatToBuild
from cratepkg.workspace import Workspace


def test_inferred_build_compiles_discovered_executable(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "foo", {"main.rs": "fn main() {}"})
    tree = _tree(workspace, "foo")

    outcome = orchestrator.build(tree, WhatToBuild())

    assert not outcome.custom
    assert [request.role for request in compiler.compiled] == [UnitRole.EXECUTABLE]
    assert outcome.artifacts == [workspace.build / "foo" / "foo"]
    assert (workspace.build / "foo" / "foo").is_file()


def test_rebuild_uses_cached_compiles(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "foo", {"lib.rs": "", "main.rs": ""})

    orchestrator.build(_tree(workspace, "foo"), WhatToBuild())
    orchestrator.build(_tree(workspace, "foo"), WhatToBuild())

    assert len(compiler.compiled) == 2
    assert orchestrator.cache.hits == 2


def test_custom_script_supplies_configs_and_skips_units(
    workspace: Workspace, write_package, compiler: InProcessCompiler, cache: WorkCache
) -> None:
    write_package(
        workspace.root,
        "bar",
        {"pkg.rs": _shell_script(configs="feature_x feature_y"), "lib.rs": ""},
    )
    context = Context(search_path=(workspace.root,), cfgs=("debug", "feature_x"), sysroot=Path("/sysroot"))
    orchestrator = BuildOrchestrator(context, compiler, cache)

    outcome = orchestrator.build(_tree(workspace, "bar"), WhatToBuild())

    assert outcome.custom
    assert outcome.cfgs == ["feature_x", "feature_y", "debug"]
    assert [request.role for request in compiler.compiled] == [None]


def test_failing_custom_script_aborts_build(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    write_package(workspace.root, "bar", {"pkg.rs": _shell_script(install_exit=1), "main.rs": ""})

    with pytest.raises(CustomBuildFailed):
        orchestrator.build(_tree(workspace, "bar"), WhatToBuild())

    assert not (workspace.build / "bar" / "bar").exists()


def test_inferred_build_type_ignores_package_script(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "bar", {"pkg.rs": _shell_script(install_exit=1), "lib.rs": ""})

    outcome = orchestrator.build(_tree(workspace, "bar"), WhatToBuild(BuildType.INFERRED, Everything()))

    assert not outcome.custom
    assert [request.role for request in compiler.compiled] == [UnitRole.LIBRARY]


def test_tests_only_compiles_test_units(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "foo", {"lib.rs": "", "main.rs": "", "tests/test.rs": ""})

    orchestrator.build(_tree(workspace, "foo"), WhatToBuild(sources=TestsOnly()))

    assert [request.role for request in compiler.compiled] == [UnitRole.TEST]
    assert compiler.compiled[0].source == workspace.src / "foo" / "tests" / "test.rs"


def test_exactly_one_unit_by_name(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "foo", {"lib.rs": "", "src/main.rs": ""})
    what = WhatToBuild(BuildType.INFERRED, ExactlyOne(PurePosixPath("src/main.rs")))

    orchestrator.build(_tree(workspace, "foo"), what)

    assert [request.source.name for request in compiler.compiled] == ["main.rs"]


def test_exactly_one_unclassified_file_is_rejected(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    write_package(workspace.root, "foo", {"tests/unit.rs": "", "main.rs": ""})
    what = WhatToBuild(BuildType.INFERRED, ExactlyOne(PurePosixPath("tests/unit.rs")))

    with pytest.raises(UnresolvedTarget):
        orchestrator.build(_tree(workspace, "foo"), what)

    assert compiler.compiled == []


def test_missing_explicit_unit_is_reported(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    write_package(workspace.root, "foo", {"lib.rs": ""})
    what = WhatToBuild(BuildType.INFERRED, ExactlyOne(PurePosixPath("main.rs")))

    with pytest.raises(UnresolvedTarget):
        orchestrator.build(_tree(workspace, "foo"), what)


def test_package_without_units_warns(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    write_package(workspace.root, "empty", {"README": ""})

    outcome = orchestrator.build(_tree(workspace, "empty"), WhatToBuild())

    assert outcome.artifacts == []
    assert orchestrator.logger.messages("warn") == ["couldn't infer any units to build for empty"]


def test_compile_failure_propagates(workspace: Workspace, write_package, cache: WorkCache) -> None:
    write_package(workspace.root, "foo", {"lib.rs": ""})
    compiler = InProcessCompiler(failing_sources=frozenset({"lib.rs"}))
    orchestrator = BuildOrchestrator(Context(search_path=(workspace.root,)), compiler, cache)

    with pytest.raises(CompileFailed):
        orchestrator.build(_tree(workspace, "foo"), WhatToBuild())


def test_build_args_by_id_and_from_cwd(
    tmp_path: Path, workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    package_dir = write_package(workspace.root, "github.com/u/foo", {"lib.rs": ""})

    by_id = orchestrator.build_args("github.com/u/foo", WhatToBuild(), tmp_path)
    from_cwd = orchestrator.build_args(None, WhatToBuild(), package_dir)

    assert by_id == (PackageId.parse("github.com/u/foo"), workspace)
    assert from_cwd == by_id


def test_build_args_unknown_package(tmp_path: Path, orchestrator: BuildOrchestrator) -> None:
    with pytest.raises(PackageNotFound):
        orchestrator.build_args("nowhere", WhatToBuild(), tmp_path)


def test_build_from_crate_directory_outside_workspaces(
    tmp_path: Path, workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    loose = write_package(tmp_path, "loose", {"main.rs": ""}, layout=False)

    pkg_id, destination = orchestrator.build_args(None, WhatToBuild(), loose)

    assert pkg_id == PackageId.parse("loose")
    assert destination == workspace
    assert (workspace.build / "loose" / "loose").is_file()


def test_git_fallback_clones_then_builds_once(
    tmp_path: Path, workspace: Workspace, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    external = tmp_path / "external"
    _create_repo(external / "foo", {"main.rs": "fn main() {}"})

    trees = orchestrator.trees_for(PackageId.parse("foo"), external)
    outcome = orchestrator.build(trees[0], WhatToBuild())

    assert outcome.fallback_used
    assert outcome.tree.start_dir == workspace.src / "foo"
    assert outcome.tree.source_workspace == workspace
    assert (workspace.src / "foo" / "main.rs").is_file()
    assert len(compiler.compiled) == 1
    assert any("cloned foo" in message for message in orchestrator.logger.messages("note"))


def test_git_fallback_failure_without_substitute(
    tmp_path: Path, workspace: Workspace, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    external = tmp_path / "external"
    _create_repo(external / "foo", {"main.rs": ""})
    tree = orchestrator.trees_for(PackageId.parse("foo#no-such-tag"), external)[0]

    with pytest.raises(GitCheckoutFailed) as excinfo:
        orchestrator.build(tree, WhatToBuild())

    assert excinfo.value.path == "foo"
    assert excinfo.value.out_dir == str(workspace.src / "foo")
    assert compiler.compiled == []


def test_git_fallback_failure_uses_substitute(
    tmp_path: Path, workspace: Workspace, write_package, compiler: InProcessCompiler, cache: WorkCache
) -> None:
    external = tmp_path / "external"
    _create_repo(external / "foo", {"main.rs": ""})
    substitute = write_package(tmp_path, "substitute", {"lib.rs": ""}, layout=False)
    orchestrator = BuildOrchestrator(
        Context(search_path=(workspace.root,)),
        compiler,
        cache,
        StructuredLogger(),
        checkout_substitute=substitute,
    )
    tree = orchestrator.trees_for(PackageId.parse("foo#no-such-tag"), external)[0]

    outcome = orchestrator.build(tree, WhatToBuild())

    assert outcome.fallback_used
    assert outcome.tree.start_dir == substitute
    assert [request.role for request in compiler.compiled] == [UnitRole.LIBRARY]
    assert len(orchestrator.logger.messages("warn")) == 1


def test_cloned_working_copy_at_other_version_is_not_built(
    tmp_path: Path, workspace: Workspace, orchestrator: BuildOrchestrator, compiler: InProcessCompiler
) -> None:
    external = tmp_path / "external"
    repo = _create_repo(external / "foo", {"main.rs": "// v1\n"})
    _run_git(["tag", "v1"], cwd=repo)
    (repo / "main.rs").write_text("// v2\n", encoding="utf-8")
    _run_git(["commit", "-am", "second"], cwd=repo)
    _run_git(["tag", "v2"], cwd=repo)

    first = orchestrator.trees_for(PackageId.parse("foo#v1"), external)[0]
    orchestrator.build(first, WhatToBuild())
    again = orchestrator.trees_for(PackageId.parse("foo#v1"), external)[0]
    orchestrator.build(again, WhatToBuild())
    second = orchestrator.trees_for(PackageId.parse("foo#v2"), external)[0]

    with pytest.raises(GitCheckoutFailed) as excinfo:
        orchestrator.build(second, WhatToBuild())

    assert excinfo.value.out_dir == str(workspace.src / "foo")
    assert (workspace.src / "foo" / "main.rs").read_text(encoding="utf-8") == "// v1\n"
    assert [request.source.read_text(encoding="utf-8") for request in compiler.compiled] == ["// v1\n"]


def test_clean_removes_build_directory(
    workspace: Workspace, write_package, orchestrator: BuildOrchestrator
) -> None:
    write_package(workspace.root, "foo", {"main.rs": ""})
    orchestrator.build(_tree(workspace, "foo"), WhatToBuild())

    orchestrator.clean(workspace, PackageId.parse("foo"))

    assert not (workspace.build / "foo").exists()
    assert orchestrator.logger.messages("note")[-1] == "Cleaned package foo"


def test_test_runs_built_test_executable(tmp_path: Path, workspace: Workspace, orchestrator: BuildOrchestrator) -> None:
    marker = tmp_path / "ran"
    _executable(workspace.build / "foo" / "footest", f'#!/bin/sh\necho "$1" > {marker}\n')

    orchestrator.test(PackageId.parse("foo"), workspace)

    assert marker.read_text(encoding="utf-8").strip() == "--test"


def test_test_failures_are_reported(workspace: Workspace, orchestrator: BuildOrchestrator) -> None:
    _executable(workspace.build / "foo" / "footest", "#!/bin/sh\nexit 2\n")

    with pytest.raises(TestsFailed) as excinfo:
        orchestrator.test(PackageId.parse("foo"), workspace)

    assert excinfo.value.context["status"] == "exit status 2"


def test_test_requires_built_executable(workspace: Workspace, orchestrator: BuildOrchestrator) -> None:
    with pytest.raises(TestsFailed):
        orchestrator.test(PackageId.parse("foo"), workspace)


def test_init_workspace_creates_layout(tmp_path: Path) -> None:
    workspace = init_workspace(tmp_path / "fresh")

    assert workspace.src.is_dir()
    assert workspace.bin.is_dir()


def _tree(workspace: Workspace, path: str) -> SourceTree:
    return SourceTree.locate(workspace, workspace, False, PackageId.parse(path))


def _executable(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


def _shell_script(*, configs: str = "", install_exit: int = 0) -> str:
    return (
        "#!/bin/sh\n"
        'case "$2" in\n'
        f"  install) exit {install_exit} ;;\n"
        f"  configs) echo '{configs}' ;;\n"
        "esac\n"
    )


def _create_repo(path: Path, files: dict[str, str]) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    _run_git(["init"], cwd=path)
    _run_git(["config", "user.email", "cratepkg@example.com"], cwd=path)
    _run_git(["config", "user.name", "cratepkg test"], cwd=path)
    for name, content in files.items():
        (path / name).write_text(content, encoding="utf-8")
    _run_git(["add", "."], cwd=path)
    _run_git(["commit", "-m", "initial"], cwd=path)
    return path


def _run_git(argv: list[str], *, cwd: Path) -> None:
    completed = subprocess.run(["git", *argv], cwd=cwd, check=False, text=True, capture_output=True)
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
