"""Persistent bake progress store."""

from .progress_store import TABLE, SqlProgressStore

__all__ = ["SqlProgressStore", "TABLE"]
