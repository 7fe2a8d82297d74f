"""Persistent memoization of named preparations keyed by their inputs.

A preparation is identified by a tag. Its declared inputs are fixed before
execution; inputs and outputs discovered during execution are recorded with
their fingerprints. A later preparation with the same tag and identical
declared inputs returns the recorded result, without executing, as long as
every discovered input and output still fingerprints the same.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from cratepkg.cache.fingerprint import is_missing, refresh
from cratepkg.errors import CacheError

T = TypeVar("T")

DB_FORMAT_VERSION = 1


@dataclass(frozen=True, slots=True)
class CacheEntry:
    kind: str
    name: str
    fingerprint: str

    def to_payload(self) -> list[str]:
        return [self.kind, self.name, self.fingerprint]

    @classmethod
    def from_payload(cls, payload: list[str]) -> CacheEntry:
        kind, name, fingerprint = payload
        return cls(kind=kind, name=name, fingerprint=fingerprint)

    def is_fresh(self) -> bool:
        if is_missing(self.fingerprint):
            return False
        return refresh(self.fingerprint, self.name) == self.fingerprint


@dataclass(slots=True)
class Exec:
    """Handle given to a preparation body for discovering inputs and outputs."""

    discovered_inputs: list[CacheEntry] = field(default_factory=list)
    discovered_outputs: list[CacheEntry] = field(default_factory=list)

    def discover_input(self, kind: str, name: str, fingerprint: str) -> None:
        self.discovered_inputs.append(CacheEntry(kind, name, fingerprint))

    def discover_output(self, kind: str, name: str, fingerprint: str) -> None:
        self.discovered_outputs.append(CacheEntry(kind, name, fingerprint))


@dataclass(slots=True)
class _TagLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


@dataclass(slots=True)
class Prep:
    tag: str
    cache: WorkCache
    declared_inputs: list[CacheEntry] = field(default_factory=list)

    def declare_input(self, kind: str, name: str, fingerprint: str) -> None:
        self.declared_inputs.append(CacheEntry(kind, name, fingerprint))

    def exec(self, body: Callable[[Exec], T]) -> T:
        """Return the recorded result when fresh, otherwise run *body* and record it."""
        declared = sorted(entry.to_payload() for entry in self.declared_inputs)
        record = self.cache._lookup(self.tag)
        if record is not None and record.get("declared") == declared:
            inputs = [CacheEntry.from_payload(p) for p in record.get("discovered_inputs", [])]
            outputs = [CacheEntry.from_payload(p) for p in record.get("discovered_outputs", [])]
            if all(entry.is_fresh() for entry in (*inputs, *outputs)):
                self.cache.hits += 1
                return record["result"]

        self.cache.misses += 1
        handle = Exec()
        result = body(handle)
        self.cache._store(
            self.tag,
            {
                "declared": declared,
                "discovered_inputs": [e.to_payload() for e in handle.discovered_inputs],
                "discovered_outputs": [e.to_payload() for e in handle.discovered_outputs],
                "result": result,
            },
        )
        return result


class WorkCache:
    """JSON-backed store of preparation records."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.hits = 0
        self.misses = 0
        self._db_lock = threading.Lock()
        self._tag_locks: dict[str, _TagLock] = {}

    @contextmanager
    def prepare(self, tag: str) -> Iterator[Prep]:
        """Open the preparation *tag*; same-tag preparations never interleave."""
        with self._db_lock:
            entry = self._tag_locks.setdefault(tag, _TagLock())
            entry.users += 1
        try:
            with entry.lock:
                yield Prep(tag=tag, cache=self)
        finally:
            with self._db_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._tag_locks[tag]

    def with_preparation(self, tag: str, body: Callable[[Prep], T]) -> T:
        with self.prepare(tag) as prep:
            return body(prep)

    def record(self, tag: str) -> dict[str, Any] | None:
        return self._lookup(tag)

    def _lookup(self, tag: str) -> dict[str, Any] | None:
        with self._db_lock:
            return self._read().get(tag)

    def _store(self, tag: str, record: dict[str, Any]) -> None:
        with self._db_lock:
            records = self._read()
            records[tag] = record
            self._write(records)

    def _read(self) -> dict[str, Any]:
        if not self.db_path.exists():
            return {}
        try:
            parsed = json.loads(self.db_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CacheError(
                "Build cache database is not valid JSON.",
                hint="Delete the cache database to rebuild from scratch.",
                context={"operation": "cache_load", "path": str(self.db_path)},
            ) from exc
        if not isinstance(parsed, dict) or parsed.get("version") != DB_FORMAT_VERSION:
            raise CacheError(
                "Build cache database has invalid structure.",
                hint="Delete the cache database to rebuild from scratch.",
                context={"operation": "cache_load", "path": str(self.db_path)},
            )
        records = parsed.get("records", {})
        return dict(records) if isinstance(records, dict) else {}

    def _write(self, records: dict[str, Any]) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            {"version": DB_FORMAT_VERSION, "records": records},
            indent=2,
            sort_keys=True,
        )
        fd, temp_name = tempfile.mkstemp(prefix=".workcache-", dir=str(self.db_path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload + "\n")
            os.replace(temp_name, self.db_path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
