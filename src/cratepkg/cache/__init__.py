"""Memoization engine APIs."""

from .fingerprint import digest_file_with_date, digest_only_date
from .store import Exec, Prep, WorkCache

__all__ = ["Exec", "Prep", "WorkCache", "digest_file_with_date", "digest_only_date"]
