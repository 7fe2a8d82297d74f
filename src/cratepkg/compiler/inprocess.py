"""In-process compiler driver for testing and dry runs.

Produces deterministic placeholder artifacts plus a JSON manifest describing
the command a real compiler would have received, without invoking any
external tools. Package build scripts are materialized as executable copies of
their source, so a script written for ``/bin/sh`` runs as the compiled script.
"""

from __future__ import annotations

import json
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path

from cratepkg.cache import Exec, digest_only_date
from cratepkg.compiler.base import CompileRequest, ParsedUnit, Session
from cratepkg.errors import CompileFailed

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(slots=True)
class InProcessCompiler:
    name: str = "inprocess"
    failing_sources: frozenset[str] = frozenset()
    compiled: list[CompileRequest] = field(default_factory=list)
    parsed: list[Path] = field(default_factory=list)

    def parse_and_expand(self, session: Session, source: Path) -> ParsedUnit:
        self.parsed.append(source)
        return ParsedUnit(source=source, text=source.read_text(encoding="utf-8"))

    def compile_unit(
        self,
        request: CompileRequest,
        exec: Exec,
        parsed: ParsedUnit | None = None,
    ) -> Path:
        if request.source.name in self.failing_sources:
            raise CompileFailed(
                f"Compiling {request.source} failed.",
                context={"operation": "compile_unit", "source": str(request.source)},
            )
        self.compiled.append(request)
        output_path = request.output_path()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if request.role is None:
            shutil.copyfile(request.source, output_path)
            output_path.chmod(output_path.stat().st_mode | _EXEC_BITS)
            return output_path

        role = request.role.value
        output_path.write_text(
            f"package={request.id}\n"
            f"role={role}\n"
            f"source={request.source}\n"
            f"cfgs={' '.join(request.cfgs)}\n",
            encoding="utf-8",
        )
        metadata_path = output_path.with_name(f"{output_path.name}.json")
        metadata = {
            "compiler": self.name,
            "package": str(request.id),
            "role": role,
            "source": str(request.source),
            "cfgs": list(request.cfgs),
            "flags": request.session.flags.to_args(),
            "output_path": str(output_path),
        }
        metadata_path.write_text(
            json.dumps(metadata, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        exec.discover_output("metadata", str(metadata_path), digest_only_date(metadata_path))
        return output_path
