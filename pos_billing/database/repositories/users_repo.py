from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...constants import ROLES


@dataclass
class User:
    user_id: int | None
    business_id: int
    username: str
    full_name: str
    role: str
    collector_code: str | None = None
    is_active: bool = True


class UsersRepo:
    """
    Read side of the user table. Authentication lives outside this package;
    billing only needs roles (for gating) and collector codes (for bill numbers).
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, user_id: int) -> User | None:
        r = self.conn.execute(
            "SELECT user_id, business_id, username, full_name, role, collector_code, is_active "
            "FROM users WHERE user_id=?",
            (user_id,),
        ).fetchone()
        if not r:
            return None
        return User(**{**dict(r), "is_active": bool(r["is_active"])})

    def collector_code(self, user_id: int | None) -> str | None:
        if user_id is None:
            return None
        r = self.conn.execute(
            "SELECT collector_code FROM users WHERE user_id=?", (user_id,)
        ).fetchone()
        code = (r["collector_code"] or "").strip() if r else ""
        return code or None

    def create(
        self,
        business_id: int,
        username: str,
        full_name: str,
        role: str,
        collector_code: str | None = None,
    ) -> int:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        with self.conn:
            cur = self.conn.execute(
                "INSERT INTO users(business_id, username, full_name, role, collector_code) "
                "VALUES (?, ?, ?, ?, ?)",
                (business_id, username.strip(), full_name.strip(), role, collector_code),
            )
        return int(cur.lastrowid)
