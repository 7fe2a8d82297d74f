"""Compiler driver that shells out to an external compiler executable."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cratepkg.cache import Exec
from cratepkg.compiler.base import CompileRequest, ParsedUnit, Session
from cratepkg.errors import CompileFailed
from cratepkg.process import ProcessOutput, run_output
from cratepkg.target import UnitRole

_CRATE_TYPE_ARGS: dict[UnitRole | None, tuple[str, ...]] = {
    None: ("--crate-type=bin",),
    UnitRole.LIBRARY: ("--crate-type=dylib",),
    UnitRole.EXECUTABLE: ("--crate-type=bin",),
    UnitRole.TEST: ("--test",),
    UnitRole.BENCHMARK: ("--test",),
}


@dataclass(slots=True)
class CommandCompiler:
    tool: str = "rustc"
    name: str = "command"

    def parse_and_expand(self, session: Session, source: Path) -> ParsedUnit:
        command = (self.tool, "--sysroot", str(session.sysroot), "--pretty", "expanded", str(source))
        output = self._run(command, source=source, operation="parse_and_expand")
        return ParsedUnit(source=source, text=output.stdout)

    def compile_unit(
        self,
        request: CompileRequest,
        exec: Exec,
        parsed: ParsedUnit | None = None,
    ) -> Path:
        output_path = request.output_path()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        command = [
            self.tool,
            str(request.source),
            "--sysroot",
            str(request.session.sysroot),
            *_CRATE_TYPE_ARGS[request.role],
            *request.session.flags.to_args(),
        ]
        for cfg in request.cfgs:
            command.extend(["--cfg", cfg])
        command.extend(["-o", str(output_path)])
        self._run(tuple(command), source=request.source, operation="compile_unit")
        return output_path

    def _run(self, command: tuple[str, ...], *, source: Path, operation: str) -> ProcessOutput:
        try:
            output = run_output(command)
        except OSError as exc:
            raise CompileFailed(
                f"Could not start compiler `{self.tool}`.",
                hint="Install the compiler or pass --compiler with its path.",
                context={"operation": operation, "source": str(source), "error": str(exc)},
            ) from exc
        if not output.status.success:
            raise CompileFailed(
                f"Compiling {source} failed.",
                hint="Check the compiler output for details.",
                context={
                    "operation": operation,
                    "source": str(source),
                    "status": str(output.status),
                    "stderr": output.stderr[:2000],
                    "command": " ".join(command),
                },
            )
        return output
