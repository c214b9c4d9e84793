"""
Caller Context

The authenticated identity is passed explicitly into every service call
instead of being read from request-global state.
"""

from dataclasses import dataclass
from models import UserRole


@dataclass(frozen=True)
class CallerContext:
    user_id: int
    user_uuid: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_cleaner(self) -> bool:
        return self.role == UserRole.CLEANER

    @classmethod
    def for_user(cls, user) -> 'CallerContext':
        return cls(user_id=user.id, user_uuid=user.uuid, role=user.role)
