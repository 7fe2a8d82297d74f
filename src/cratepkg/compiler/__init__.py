"""Compiler driver contracts and implementations."""

from .base import PACKAGE_SCRIPT_EXE, CompileRequest, CompilerDriver, ParsedUnit, Session
from .command import CommandCompiler
from .inprocess import InProcessCompiler

__all__ = [
    "PACKAGE_SCRIPT_EXE",
    "CommandCompiler",
    "CompileRequest",
    "CompilerDriver",
    "InProcessCompiler",
    "ParsedUnit",
    "Session",
]
