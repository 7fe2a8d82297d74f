"""Public package entrypoint for the cratepkg package manager."""

from .context import CompilerFlags, Context, OutputMode
from .errors import (
    AmbiguousRole,
    BadFlag,
    CacheError,
    CompileFailed,
    CopyFailed,
    CustomBuildFailed,
    GitCheckoutFailed,
    MalformedIdentifier,
    NoWorkspaceConfigured,
    PackageNotFound,
    PkgError,
    TestsFailed,
    UnresolvedTarget,
)
from .install import InstallManifest, InstallPipeline
from .orchestrator import BuildOrchestrator, BuildOutcome
from .package_id import PackageId
from .source import SourceTree
from .target import BuildType, Everything, ExactlyOne, TestsOnly, UnitRole, WhatToBuild
from .workspace import Workspace, WorkspaceResolver

__all__ = [
    "AmbiguousRole",
    "BadFlag",
    "BuildOrchestrator",
    "BuildOutcome",
    "BuildType",
    "CacheError",
    "CompileFailed",
    "CompilerFlags",
    "Context",
    "CopyFailed",
    "CustomBuildFailed",
    "Everything",
    "ExactlyOne",
    "GitCheckoutFailed",
    "InstallManifest",
    "InstallPipeline",
    "MalformedIdentifier",
    "NoWorkspaceConfigured",
    "OutputMode",
    "PackageId",
    "PackageNotFound",
    "PkgError",
    "SourceTree",
    "TestsFailed",
    "TestsOnly",
    "UnitRole",
    "UnresolvedTarget",
    "WhatToBuild",
    "Workspace",
    "WorkspaceResolver",
]
