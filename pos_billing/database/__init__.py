# pos_billing/database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION
from . import schema as schema_module
from .seeders.default_data import seed as seed_default_data
from .versioning import SchemaVersionError, ensure_version


def get_connection(db_path: Path | str | None = None, *, seed: bool = True) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode (file databases)
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
      - a busy timeout so concurrent writers queue instead of failing fast
    Ensures schema & seed data are applied idempotently.

    Every process/actor should hold its own connection; the atomic billing
    procedures rely on sqlite's write lock (BEGIN IMMEDIATE) for serialization.
    """
    target = Path(db_path) if db_path is not None else DB_PATH
    is_memory = str(target) == ":memory:"
    if not is_memory:
        target.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(target), timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if not is_memory:
        conn.execute("PRAGMA journal_mode = WAL;")

    try:
        # refuse a newer database before touching its tables
        ensure_version(conn, SCHEMA_VERSION)
    except SchemaVersionError:
        conn.close()
        raise
    schema_module.apply_schema(conn)

    # Seeders should be safe to run repeatedly (idempotent).
    if seed:
        seed_default_data(conn)

    conn.commit()
    return conn


__all__ = [
    "get_connection",
    "SchemaVersionError",
]
