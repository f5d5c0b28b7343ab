# pos_billing/utils/auth.py
"""
Acting-user context and role gating.

Authentication happens elsewhere; billing receives the already-resolved
(user_id, role, business_id) of whoever is at the register and asks the
helpers below what that actor may do.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..constants import ELEVATED_ROLES, ROLE_SALESMAN, ROLES


@dataclass(frozen=True)
class ActorContext:
    user_id: int
    role: str
    business_id: int
    collector_code: Optional[str] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")


def is_elevated(actor: ActorContext) -> bool:
    return actor.role in ELEVATED_ROLES


def can_finalize(actor: ActorContext) -> bool:
    return is_elevated(actor)


def can_apply_discount(actor: ActorContext) -> bool:
    return is_elevated(actor)


def can_modify_draft(actor: ActorContext, created_by: Optional[int]) -> bool:
    """Creator of the draft, or anyone with an elevated role."""
    return is_elevated(actor) or (created_by is not None and created_by == actor.user_id)


def draft_scope(actor: ActorContext) -> Optional[int]:
    """
    `created_by` filter for draft listings: salesmen only see their own drafts,
    everyone else sees the whole business.
    """
    return actor.user_id if actor.role == ROLE_SALESMAN else None
