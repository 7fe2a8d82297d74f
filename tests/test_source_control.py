import stat
import subprocess
from pathlib import Path

from cratepkg.package_id import PackageId
from cratepkg.source_control import (
    CheckedOut,
    CheckoutFailed,
    SourceControlFallback,
    checkout_matches,
    git_clone,
    is_git_dir,
    make_read_only,
)
from cratepkg.workspace import Workspace, WorkspaceResolver


def test_is_git_dir(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "repo")

    assert is_git_dir(repo)
    assert not is_git_dir(tmp_path)


def test_git_clone_checks_out_requested_version(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "repo")
    (repo / "lib.rs").write_text("// changed after tag\n", encoding="utf-8")
    _run_git(["commit", "-am", "after tag"], cwd=repo)

    outcome = git_clone(repo, "v1", tmp_path / "out" / "foo")

    assert outcome == CheckedOut(path=tmp_path / "out" / "foo")
    assert (tmp_path / "out" / "foo" / "lib.rs").read_text(encoding="utf-8") == "// lib\n"


def test_git_clone_reports_unknown_version_as_failure(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "repo")
    dest = tmp_path / "out" / "foo"

    outcome = git_clone(repo, "no-such-tag", dest)

    assert isinstance(outcome, CheckoutFailed)
    assert outcome.out_dir == dest
    assert not dest.exists()
    assert list((tmp_path / "out").iterdir()) == []


def test_git_clone_reuses_existing_working_copy(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "repo")
    dest = tmp_path / "out" / "foo"
    git_clone(repo, None, dest)

    second = git_clone(repo, None, dest)

    assert second == CheckedOut(path=dest, reused=True)


def test_make_read_only_clears_write_bits(tmp_path: Path) -> None:
    nested = tmp_path / "tree" / "nested"
    nested.mkdir(parents=True)
    (nested / "file.rs").write_text("", encoding="utf-8")

    make_read_only(tmp_path / "tree")

    mode = (nested / "file.rs").stat().st_mode
    assert not mode & (stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)


def test_fallback_applies_only_outside_search_path(tmp_path: Path) -> None:
    default_ws = Workspace(tmp_path / "default")
    default_ws.create_layout()
    external = Workspace(tmp_path / "external")
    _create_repo(external.root / "foo")
    _create_repo(default_ws.src / "foo")
    fallback = SourceControlFallback(WorkspaceResolver([default_ws.root]))
    pkg_id = PackageId.parse("foo")

    assert fallback.applies(external, pkg_id)
    assert not fallback.applies(default_ws, pkg_id)


def test_fallback_clones_into_default_workspace_read_only(tmp_path: Path) -> None:
    default_ws = Workspace(tmp_path / "default")
    default_ws.create_layout()
    external = Workspace(tmp_path / "external")
    _create_repo(external.root / "foo")
    fallback = SourceControlFallback(WorkspaceResolver([default_ws.root]))

    outcome = fallback.run(external, PackageId.parse("foo#v1"))

    assert outcome == CheckedOut(path=default_ws.src / "foo")
    mode = (default_ws.src / "foo" / "lib.rs").stat().st_mode
    assert not mode & stat.S_IWUSR


def _create_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    _run_git(["init"], cwd=path)
    _run_git(["config", "user.email", "cratepkg@example.com"], cwd=path)
    _run_git(["config", "user.name", "cratepkg test"], cwd=path)
    (path / "lib.rs").write_text("// lib\n", encoding="utf-8")
    _run_git(["add", "lib.rs"], cwd=path)
    _run_git(["commit", "-m", "initial"], cwd=path)
    _run_git(["tag", "v1"], cwd=path)
    return path


def _run_git(argv: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        ["git", *argv],
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise RuntimeError(f"git {' '.join(argv)} failed: {completed.stderr.strip()}")
    return completed.stdout.strip()


def test_existing_working_copy_is_reused_only_at_requested_version(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "repo")
    (repo / "lib.rs").write_text("// v2\n", encoding="utf-8")
    _run_git(["commit", "-am", "second"], cwd=repo)
    _run_git(["tag", "v2"], cwd=repo)
    dest = tmp_path / "out" / "foo"
    git_clone(repo, "v1", dest)

    assert git_clone(repo, "v1", dest) == CheckedOut(path=dest, reused=True)
    assert checkout_matches(dest, "v1")
    assert not checkout_matches(dest, "v2")
    assert not checkout_matches(dest, "no-such-tag")

    outcome = git_clone(repo, "v2", dest)

    assert isinstance(outcome, CheckoutFailed)
    assert "v2" in outcome.reason
    assert (dest / "lib.rs").read_text(encoding="utf-8") == "// lib\n"
