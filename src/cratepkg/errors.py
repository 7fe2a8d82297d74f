"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum

COPY_FAILED_CODE = 65
BAD_FLAG_CODE = 67
NONEXISTENT_PACKAGE_CODE = 70


class ErrorCode(StrEnum):
    """Stable error identifiers used across command surfaces."""

    MALFORMED_IDENTIFIER = "E_MALFORMED_IDENTIFIER"
    NO_WORKSPACE = "E_NO_WORKSPACE"
    PACKAGE_NOT_FOUND = "E_PACKAGE_NOT_FOUND"
    AMBIGUOUS_ROLE = "E_AMBIGUOUS_ROLE"
    UNRESOLVED_TARGET = "E_UNRESOLVED_TARGET"
    GIT_CHECKOUT_FAILED = "E_GIT_CHECKOUT_FAILED"
    CUSTOM_BUILD_FAILED = "E_CUSTOM_BUILD_FAILED"
    COMPILE_FAILED = "E_COMPILE_FAILED"
    COPY_FAILED = "E_COPY_FAILED"
    TESTS_FAILED = "E_TESTS_FAILED"
    BAD_FLAG = "E_BAD_FLAG"
    CACHE = "E_CACHE"


class PkgError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class MalformedIdentifier(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MALFORMED_IDENTIFIER, hint=hint, context=context)


class NoWorkspaceConfigured(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.NO_WORKSPACE, hint=hint, context=context)


class PackageNotFound(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.PACKAGE_NOT_FOUND, hint=hint, context=context)


class AmbiguousRole(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.AMBIGUOUS_ROLE, hint=hint, context=context)


class UnresolvedTarget(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.UNRESOLVED_TARGET, hint=hint, context=context)


class GitCheckoutFailed(PkgError):
    """Cloning a non-workspace source into the default workspace failed."""

    def __init__(
        self,
        message: str,
        *,
        path: str,
        out_dir: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = {"path": path, "out_dir": out_dir, **dict(context or {})}
        super().__init__(message, code=ErrorCode.GIT_CHECKOUT_FAILED, hint=hint, context=merged)
        self.path = path
        self.out_dir = out_dir


class CustomBuildFailed(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CUSTOM_BUILD_FAILED, hint=hint, context=context)


class CompileFailed(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.COMPILE_FAILED, hint=hint, context=context)


class CopyFailed(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.COPY_FAILED, hint=hint, context=context)


class TestsFailed(PkgError):
    __test__ = False

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TESTS_FAILED, hint=hint, context=context)


class BadFlag(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BAD_FLAG, hint=hint, context=context)


class CacheError(PkgError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CACHE, hint=hint, context=context)


def exit_code_for(error: BaseException) -> int:
    """Map a fatal error onto the process exit status reported to the shell."""
    if isinstance(error, PackageNotFound):
        return NONEXISTENT_PACKAGE_CODE
    if isinstance(error, BadFlag):
        return BAD_FLAG_CODE
    return COPY_FAILED_CODE


__all__ = [
    "BAD_FLAG_CODE",
    "COPY_FAILED_CODE",
    "NONEXISTENT_PACKAGE_CODE",
    "AmbiguousRole",
    "BadFlag",
    "CacheError",
    "CompileFailed",
    "CopyFailed",
    "CustomBuildFailed",
    "ErrorCode",
    "GitCheckoutFailed",
    "MalformedIdentifier",
    "NoWorkspaceConfigured",
    "PackageNotFound",
    "PkgError",
    "TestsFailed",
    "UnresolvedTarget",
    "exit_code_for",
]
