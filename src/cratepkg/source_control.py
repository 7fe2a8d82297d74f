"""Git working-copy detection and the fallback clone into the default workspace."""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cratepkg.package_id import PackageId
from cratepkg.workspace import Workspace, WorkspaceResolver

_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


@dataclass(frozen=True, slots=True)
class CheckedOut:
    path: Path
    reused: bool = False


@dataclass(frozen=True, slots=True)
class CheckoutFailed:
    source: Path
    out_dir: Path
    reason: str


CheckoutOutcome = CheckedOut | CheckoutFailed


def is_git_dir(path: str | Path) -> bool:
    return (Path(path) / ".git").is_dir()


def checkout_matches(path: Path, version: str | None) -> bool:
    """True when *version* is unset or names the commit checked out at *path*."""
    if version is None:
        return True
    head = _run_git(["rev-parse", "HEAD"], cwd=path)
    wanted = _run_git(["rev-parse", "--verify", "--quiet", f"{version}^{{commit}}"], cwd=path)
    if head.returncode != 0 or wanted.returncode != 0:
        return False
    return head.stdout.strip() == wanted.stdout.strip()


def git_clone(source: Path, version: str | None, dest: Path) -> CheckoutOutcome:
    """Clone the local working copy *source* into *dest*, checking out *version*.

    Git failures are reported as a :class:`CheckoutFailed` value, never raised.
    An existing working copy at *dest* from an earlier clone is reused only
    when it is checked out at *version*.
    """
    if not is_git_dir(source):
        return CheckoutFailed(source=source, out_dir=dest, reason="source is not a git working copy")
    if dest.exists():
        if is_git_dir(dest):
            if checkout_matches(dest, version):
                return CheckedOut(path=dest, reused=True)
            return CheckoutFailed(
                source=source,
                out_dir=dest,
                reason=f"existing working copy is not at version {version}",
            )
        return CheckoutFailed(source=source, out_dir=dest, reason="destination exists")

    dest.parent.mkdir(parents=True, exist_ok=True)
    temp_root = Path(tempfile.mkdtemp(prefix=".cratepkg-git-", dir=str(dest.parent)))
    try:
        checkout = temp_root / "checkout"
        completed = _run_git(["clone", "--quiet", str(source), str(checkout)])
        if completed.returncode != 0:
            return CheckoutFailed(source=source, out_dir=dest, reason=completed.stderr.strip())
        if version is not None:
            completed = _run_git(["checkout", "--quiet", version], cwd=checkout)
            if completed.returncode != 0:
                return CheckoutFailed(source=source, out_dir=dest, reason=completed.stderr.strip())
        shutil.move(str(checkout), dest)
    finally:
        shutil.rmtree(temp_root, ignore_errors=True)
    return CheckedOut(path=dest)


def make_read_only(target: Path) -> None:
    """Clear the write bits of every file under *target*."""
    for dirpath, _, filenames in os.walk(target):
        for filename in filenames:
            path = Path(dirpath, filename)
            if path.is_symlink():
                continue
            mode = path.stat().st_mode
            path.chmod(mode & ~_WRITE_BITS)


class SourceControlFallback:
    """Materializes a non-workspace git source into the default workspace."""

    def __init__(self, resolver: WorkspaceResolver) -> None:
        self.resolver = resolver

    def applies(self, source_workspace: Workspace, pkg_id: PackageId) -> bool:
        return not self.resolver.is_in_workspace(source_workspace.root) and is_git_dir(
            source_workspace.root / pkg_id.relative_path()
        )

    def out_dir(self, pkg_id: PackageId) -> Path:
        return self.resolver.default_workspace().package_dir(pkg_id)

    def run(self, source_workspace: Workspace, pkg_id: PackageId) -> CheckoutOutcome:
        out_dir = self.out_dir(pkg_id)
        outcome = git_clone(source_workspace.root / pkg_id.relative_path(), pkg_id.version, out_dir)
        if isinstance(outcome, CheckedOut) and not outcome.reused:
            make_read_only(outcome.path)
        return outcome


def _run_git(argv: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    command = ["git", *argv]
    try:
        return subprocess.run(
            command,
            cwd=cwd,
            check=False,
            text=True,
            capture_output=True,
        )
    except OSError as exc:
        return subprocess.CompletedProcess(command, 127, stdout="", stderr=str(exc))


__all__ = [
    "CheckedOut",
    "CheckoutFailed",
    "CheckoutOutcome",
    "SourceControlFallback",
    "checkout_matches",
    "git_clone",
    "is_git_dir",
    "make_read_only",
]
