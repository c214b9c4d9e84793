"""
User Service

Resolves the authenticated caller, looks up cleaner profiles and runs the
admin soft-delete / restore cascade over everything a user owns.
"""

from typing import Optional, Dict
import logging
from sqlalchemy import update
from models import db, User, Cleaner, Booking, Review, Payment
from timezone_utils import app_clock
from .identity import CallerContext
from .exceptions import NotAuthenticated, AccessDenied, NotFound, PreconditionFailed
from .transaction_helper import TransactionHelper
from .audit_service import AuditService

logger = logging.getLogger(__name__)

# Tables hanging off a user, with the column that names the owner
OWNERSHIP_GRAPH = (
    ('bookings', Booking, Booking.customer_id),
    ('reviews', Review, Review.user_id),
    ('payments', Payment, Payment.user_id),
)


def require_admin(caller: Optional[CallerContext]) -> CallerContext:
    if caller is None:
        raise NotAuthenticated()
    if not caller.is_admin:
        raise AccessDenied("Admin access required")
    return caller


class UserService:
    """Service class for caller identity and user lifecycle"""

    def __init__(self, clock=None):
        self.clock = clock or app_clock()
        self.audit_service = AuditService()

    @staticmethod
    def resolve_caller(identity: Optional[str]) -> CallerContext:
        """Turn a JWT identity (user uuid) into a CallerContext."""
        if not identity:
            raise NotAuthenticated()

        user = User.query.filter_by(uuid=str(identity), is_deleted=False).first()
        if not user:
            raise NotAuthenticated("User not found or deactivated")
        return CallerContext.for_user(user)

    @staticmethod
    def get_cleaner(caller: Optional[CallerContext]) -> Cleaner:
        """Cleaner profile of the caller."""
        if caller is None:
            raise NotAuthenticated()
        if not caller.is_cleaner:
            raise AccessDenied("Cleaner access required")

        cleaner = Cleaner.query.filter_by(user_id=caller.user_id).first()
        if not cleaner:
            raise NotFound("Cleaner profile not found")
        return cleaner

    @TransactionHelper.with_transaction
    def soft_delete_user(self, caller: CallerContext, user_id: int) -> Dict[str, int]:
        """
        Soft-delete a user and every live row they own, in one transaction.

        Children are stamped with the same deleted_at as the user so that a
        later restore brings back exactly what this cascade hid.

        Returns:
            dict: rows hidden per table
        """
        require_admin(caller)

        user = db.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        if user.is_deleted:
            raise PreconditionFailed("User is already deleted")
        if user.id == caller.user_id:
            raise PreconditionFailed("Admins cannot delete their own account")

        now = self.clock.now()
        counts = {}
        for name, model, owner_column in OWNERSHIP_GRAPH:
            result = db.session.execute(
                update(model)
                .where(owner_column == user.id, model.is_deleted.is_(False))
                .values(is_deleted=True, deleted_at=now)
                .execution_options(synchronize_session='fetch')
            )
            counts[name] = result.rowcount

        user.is_deleted = True
        user.deleted_at = now

        self.audit_service.log_action(
            action='soft_delete_user',
            entity_type='user',
            entity_id=user.id,
            details=counts,
            user_id=caller.user_id
        )

        logger.info(f"User {user.id} soft-deleted by admin {caller.user_id}: {counts}")
        return counts

    @TransactionHelper.with_transaction
    def restore_user(self, caller: CallerContext, user_id: int) -> Dict[str, int]:
        """
        Undo soft_delete_user: restore the user and the rows its cascade hid.
        Rows deleted independently before the user keep their deleted state.
        """
        require_admin(caller)

        user = db.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        if not user.is_deleted:
            raise PreconditionFailed("User is not deleted")

        deleted_at = user.deleted_at
        counts = {}
        for name, model, owner_column in OWNERSHIP_GRAPH:
            result = db.session.execute(
                update(model)
                .where(owner_column == user.id,
                       model.is_deleted.is_(True),
                       model.deleted_at == deleted_at)
                .values(is_deleted=False, deleted_at=None)
                .execution_options(synchronize_session='fetch')
            )
            counts[name] = result.rowcount

        user.is_deleted = False
        user.deleted_at = None

        self.audit_service.log_action(
            action='restore_user',
            entity_type='user',
            entity_id=user.id,
            details=counts,
            user_id=caller.user_id
        )

        logger.info(f"User {user.id} restored by admin {caller.user_id}: {counts}")
        return counts
