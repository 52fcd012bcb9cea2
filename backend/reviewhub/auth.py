"""Caller identity resolved from the upstream authentication layer."""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .models import Profile

REVIEWER = "reviewer"
SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller."""
    id: int
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_profile(cls, profile: Profile) -> "CurrentUser":
        return cls(id=profile.id, roles=frozenset(profile.roles or []))


def has_role(user: CurrentUser, role: str) -> bool:
    return role in user.roles


async def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Resolve the caller from the X-User-Id header set by the auth proxy."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    profile = db.query(Profile).filter(Profile.id == x_user_id).first()
    if not profile:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return CurrentUser.from_profile(profile)
