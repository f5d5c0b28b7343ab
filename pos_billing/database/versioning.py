import sqlite3

from ..constants import SCHEMA_VERSION, TABLE_SCHEMA_VERSION


class SchemaVersionError(Exception):
    """The database was written by a newer release than this one."""
    pass


def _as_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(p) for p in str(version).split(".") if p.isdigit())


def _ensure_table(conn: sqlite3.Connection):
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}(
            id      INTEGER PRIMARY KEY CHECK (id=1),
            version TEXT NOT NULL
        );
    """)


def get_current_version(conn: sqlite3.Connection) -> str | None:
    _ensure_table(conn)
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1").fetchone()
    return row[0] if row else None


def ensure_version(conn: sqlite3.Connection, expected: str = SCHEMA_VERSION) -> str:
    """
    Stamp a fresh database with `expected`, move an older stamp forward (the
    schema script is additive and idempotent), and refuse a newer one.
    Returns the version the database now carries. Does not commit.
    """
    current = get_current_version(conn)
    if current is not None and _as_tuple(current) > _as_tuple(expected):
        raise SchemaVersionError(
            f"Database schema {current} is newer than this application ({expected})."
        )
    if current != expected:
        conn.execute(
            f"INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?) "
            "ON CONFLICT(id) DO UPDATE SET version=excluded.version",
            (expected,),
        )
    return expected
