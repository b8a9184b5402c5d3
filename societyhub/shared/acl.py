from __future__ import annotations

from typing import Any

from ..app import db
from ..models import SocietyMembership


def is_super_admin(user: Any) -> bool:
    return bool(user and getattr(user, "is_active", False) and user.is_super_admin)


def is_core_member(user: Any, society_id: int) -> bool:
    if not user or not getattr(user, "is_active", False):
        return False
    membership = (
        db.session.query(SocietyMembership.membership_id)
        .filter(
            SocietyMembership.user_id == user.user_id,
            SocietyMembership.society_id == society_id,
            SocietyMembership.is_core.is_(True),
            SocietyMembership.is_active.is_(True),
        )
        .first()
    )
    return membership is not None


def can_manage_certificates_for(user: Any, society_id: int | None) -> bool:
    if society_id is None:
        return False
    return is_super_admin(user) or is_core_member(user, society_id)
