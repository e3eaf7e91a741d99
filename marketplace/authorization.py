"""
Authorization guard

Role checks always re-read the caller's row in ``profiles``; the identity
provider's token claims are never trusted for privileged operations.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .errors import Unauthorized
from .models import Profile

logger = logging.getLogger(__name__)

ADMIN = "admin"
CLIENT = "client"
WORKER = "worker"


class AuthorizationGuard:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: Optional[str]) -> Optional[Profile]:
        if not user_id:
            return None
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def has_role(self, caller: Optional[Profile], role: str) -> bool:
        profile = self.get_profile(caller.id if caller else None)
        return profile is not None and profile.user_type == role

    def require_role(self, caller: Optional[Profile], role: str) -> Profile:
        """Fresh profile lookup for every privileged call"""
        profile = self.get_profile(caller.id if caller else None)
        if profile is None or profile.user_type != role:
            logger.warning(
                f"🚫 {caller.id if caller else 'anonymous'} denied: {role} access required"
            )
            if role == ADMIN:
                raise Unauthorized("Unauthorized - Admin access required")
            raise Unauthorized(f"Only {role}s can perform this action")
        return profile

    @staticmethod
    def require_owner(caller: Optional[Profile], owner_id: Optional[str], resource: str = "resource") -> None:
        if caller is None or owner_id is None or caller.id != owner_id:
            raise Unauthorized(f"Not authorized to act on this {resource}")
