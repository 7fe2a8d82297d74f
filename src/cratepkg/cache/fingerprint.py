"""Fingerprints for declared and discovered cache inputs and outputs."""

from __future__ import annotations

import hashlib
from pathlib import Path

MTIME_SCHEME = "mtime"
CONTENT_SCHEME = "sha256+mtime"
MISSING = "missing"


def digest_only_date(path: str | Path) -> str:
    """Fingerprint by modification time alone."""
    target = Path(path)
    if not target.is_file():
        return f"{MTIME_SCHEME}:{MISSING}"
    return f"{MTIME_SCHEME}:{target.stat().st_mtime_ns}"


def digest_file_with_date(path: str | Path) -> str:
    """Fingerprint by content hash plus modification time."""
    target = Path(path)
    if not target.is_file():
        return f"{CONTENT_SCHEME}:{MISSING}"
    digest = hashlib.sha256()
    with target.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 16), b""):
            digest.update(chunk)
    return f"{CONTENT_SCHEME}:{digest.hexdigest()}:{target.stat().st_mtime_ns}"


def refresh(fingerprint: str, path: str | Path) -> str | None:
    """Recompute *fingerprint* for *path* with the same scheme, if the scheme is known."""
    scheme, _, _ = fingerprint.partition(":")
    if scheme == MTIME_SCHEME:
        return digest_only_date(path)
    if scheme == CONTENT_SCHEME:
        return digest_file_with_date(path)
    return None


def is_missing(fingerprint: str) -> bool:
    return fingerprint.endswith(f":{MISSING}")
