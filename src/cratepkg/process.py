"""Synchronous child-process execution with guaranteed reaping."""

from __future__ import annotations

import subprocess
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

ExitKind = Literal["success", "code", "signal"]


@dataclass(frozen=True, slots=True)
class ExitStatus:
    kind: ExitKind
    value: int = 0

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        if returncode == 0:
            return cls("success")
        if returncode < 0:
            return cls("signal", -returncode)
        return cls("code", returncode)

    @property
    def success(self) -> bool:
        return self.kind == "success"

    def __str__(self) -> str:
        if self.kind == "success":
            return "exit status 0"
        if self.kind == "signal":
            return f"signal {self.value}"
        return f"exit status {self.value}"


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    status: ExitStatus
    stdout: str
    stderr: str


@contextmanager
def spawn(
    argv: Sequence[str | Path],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    capture: bool = False,
) -> Iterator[subprocess.Popen[str]]:
    """Start a child process that is killed and reaped on every exit path.

    Captured output is decoded as UTF-8; undecodable bytes become U+FFFD.
    """
    pipe = subprocess.PIPE if capture else None
    child = subprocess.Popen(
        [str(arg) for arg in argv],
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdout=pipe,
        stderr=pipe,
        encoding="utf-8",
        errors="replace",
    )
    try:
        yield child
    finally:
        if child.poll() is None:
            child.kill()
        child.wait()


def run_status(
    argv: Sequence[str | Path],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ExitStatus:
    """Run *argv* with inherited stdio and block until it exits."""
    with spawn(argv, cwd=cwd, env=env) as child:
        return ExitStatus.from_returncode(child.wait())


def run_output(
    argv: Sequence[str | Path],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessOutput:
    """Run *argv*, capturing standard output and error."""
    with spawn(argv, cwd=cwd, env=env, capture=True) as child:
        stdout, stderr = child.communicate()
        return ProcessOutput(
            status=ExitStatus.from_returncode(child.returncode),
            stdout=stdout or "",
            stderr=stderr or "",
        )


__all__ = ["ExitStatus", "ProcessOutput", "run_output", "run_status", "spawn"]
