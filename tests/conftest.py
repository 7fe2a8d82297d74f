"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from cratepkg.cache import WorkCache
from cratepkg.compiler import InProcessCompiler
from cratepkg.context import Context
from cratepkg.install import InstallPipeline
from cratepkg.observability import StructuredLogger
from cratepkg.orchestrator import BuildOrchestrator
from cratepkg.workspace import Workspace

PackageWriter = Callable[..., Path]


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    ws = Workspace(tmp_path / "ws")
    ws.create_layout()
    return ws


@pytest.fixture
def write_package() -> PackageWriter:
    """Write ``files`` under ``<root>/src/<path>`` (or ``<root>/<path>`` with ``layout=False``)."""

    def write(root: Path, path: str, files: Mapping[str, str], *, layout: bool = True) -> Path:
        package_dir = (root / "src" / path) if layout else (root / path)
        for rel, content in files.items():
            target = package_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return package_dir

    return write


@pytest.fixture
def compiler() -> InProcessCompiler:
    return InProcessCompiler()


@pytest.fixture
def context(workspace: Workspace) -> Context:
    return Context(search_path=(workspace.root,), sysroot=Path("/sysroot"))


@pytest.fixture
def cache(tmp_path: Path) -> WorkCache:
    return WorkCache(tmp_path / "cache" / "workcache.json")


@pytest.fixture
def orchestrator(context: Context, compiler: InProcessCompiler, cache: WorkCache) -> BuildOrchestrator:
    return BuildOrchestrator(context, compiler, cache, StructuredLogger())


@pytest.fixture
def pipeline(orchestrator: BuildOrchestrator, cache: WorkCache) -> InstallPipeline:
    return InstallPipeline(orchestrator, cache)
