"""Persistence for sessions, chunks and quizzes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mindvault.config import config

from .sqlite_store import SQLiteStudyStore

if TYPE_CHECKING:
    from pathlib import Path


def get_store(db_path: Path | None = None) -> SQLiteStudyStore:
    """Return a configured study store.

    Returns:
        Store backed by ``db_path``, or by config.STORE_DB_PATH when None.
    """
    if db_path is None:
        db_path = config.STORE_DB_PATH
    return SQLiteStudyStore(db_path=db_path)


__all__ = ["SQLiteStudyStore", "get_store"]
