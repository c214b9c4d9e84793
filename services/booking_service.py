"""
Booking Service

Handles the booking lifecycle: customer booking creation, cleaner pickup,
start / pause / resume / complete, payment proof submission and admin
soft-delete. Every transition is a conditional UPDATE guarded by the status
the caller saw, so two cleaners or two devices racing on the same booking
cannot both win; the loser gets Conflict and should refetch.
"""

from typing import Optional, List
import logging
from sqlalchemy import update
from models import db, Booking, BookingStatus, Service, UserRole
from timezone_utils import app_clock
from .booking_state import Transition, Actor, PICK, START, PAUSE, RESUME, COMPLETE, INITIAL_STATUS
from .identity import CallerContext
from .exceptions import (NotAuthenticated, AccessDenied, NotFound, PreconditionFailed,
                         Conflict, InvalidRequest)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .file_service import FileService
from .notification_service import NotificationService
from .payment_verification_service import PaymentVerificationService
from .user_service import UserService, require_admin

logger = logging.getLogger(__name__)


def _snapshot_guard(booking: Booking, fields) -> list:
    """WHERE clauses pinning columns to the values read before the write."""
    clauses = []
    for name in fields:
        column = getattr(Booking, name)
        value = getattr(booking, name)
        clauses.append(column.is_(None) if value is None else column == value)
    return clauses


class BookingService:
    """Service class for booking lifecycle operations"""

    def __init__(self, clock=None, file_service=None, notification_service=None):
        self.clock = clock or app_clock()
        self.audit_service = AuditService()
        self.notification_service = notification_service or NotificationService()
        self.file_service = file_service or FileService()
        self.verification_service = PaymentVerificationService(self.notification_service)

    @staticmethod
    def _load_active(booking_id: int) -> Booking:
        booking = db.session.get(Booking, booking_id)
        if not booking or booking.is_deleted:
            raise NotFound("Booking not found")
        return booking

    def _apply(self, caller: CallerContext, booking_id: int, transition: Transition) -> Booking:
        """
        Run one cleaner transition as a conditional update.

        Raises:
            NotFound: booking missing or deleted
            PreconditionFailed: booking is not in a status the transition starts from
            Conflict: booking is held by another cleaner, or changed under us
        """
        cleaner = UserService.get_cleaner(caller)
        booking = self._load_active(booking_id)

        if transition.actor is Actor.CLEANER:
            if not transition.allows(booking.status) or booking.cleaner_id is not None:
                logger.warning(f"Cleaner {cleaner.id} lost pickup of booking {booking_id} "
                               f"(status {booking.status.value})")
                raise Conflict("Booking was already taken by another cleaner")
        else:
            if not transition.allows(booking.status):
                raise PreconditionFailed(f"Cannot {transition.name} a booking that is {booking.status.value}")
            if booking.cleaner_id != cleaner.id:
                raise Conflict("Booking is not assigned to you")

        now = self.clock.now()
        values = transition.effects(booking, now, cleaner_id=cleaner.id)
        values['status'] = transition.target

        guard = [
            Booking.id == booking.id,
            Booking.is_deleted.is_(False),
            Booking.status == booking.status,
        ]
        if transition.actor is Actor.ASSIGNED_CLEANER:
            guard.append(Booking.cleaner_id == cleaner.id)
        guard.extend(_snapshot_guard(booking, transition.snapshot_fields))

        result = db.session.execute(
            update(Booking)
            .where(*guard)
            .values(**values)
            .execution_options(synchronize_session='fetch')
        )

        if result.rowcount != 1:
            db.session.expire(booking)
            current = db.session.get(Booking, booking_id)
            if current is None or current.is_deleted:
                raise NotFound("Booking not found")
            logger.warning(f"Conditional {transition.name} on booking {booking_id} matched no rows "
                           f"(now {current.status.value})")
            raise Conflict("Booking changed, please refresh and retry")

        db.session.refresh(booking)

        self.audit_service.log_action(
            action=f'{transition.name}_booking',
            entity_type='booking',
            entity_id=booking.id,
            details={
                'cleaner_id': cleaner.id,
                'status': booking.status.value,
                'total_pause_duration': booking.total_pause_duration
            },
            user_id=caller.user_id
        )
        self.notification_service.booking_changed(booking, f'booking.{booking.status.value}')

        logger.info(f"Booking {booking.id} {transition.name}: now {booking.status.value} (cleaner {cleaner.id})")
        return booking

    @TransactionHelper.with_transaction
    def pick_booking(self, caller: CallerContext, booking_id: int) -> Booking:
        """Claim a pending booking for the calling cleaner."""
        return self._apply(caller, booking_id, PICK)

    @TransactionHelper.with_transaction
    def start_job(self, caller: CallerContext, booking_id: int) -> Booking:
        return self._apply(caller, booking_id, START)

    @TransactionHelper.with_transaction
    def pause_job(self, caller: CallerContext, booking_id: int) -> Booking:
        return self._apply(caller, booking_id, PAUSE)

    @TransactionHelper.with_transaction
    def resume_job(self, caller: CallerContext, booking_id: int) -> Booking:
        """Close the open pause; its whole minutes are added to total_pause_duration."""
        return self._apply(caller, booking_id, RESUME)

    @TransactionHelper.with_transaction
    def complete_job(self, caller: CallerContext, booking_id: int) -> Booking:
        """Finish the job from in_progress or paused."""
        return self._apply(caller, booking_id, COMPLETE)

    @TransactionHelper.with_transaction
    def submit_payment_proof(self, caller: CallerContext, booking_id: int, file) -> Booking:
        """
        Store a payment proof for a completed booking and verify the payment.

        The image is uploaded first; the proof URL, the payment_verified status
        and the cleaner credit are then written in this one transaction.
        The stored image is deleted again whenever the transaction rolls back,
        so a failed or retried attempt leaves no unreferenced file.

        Raises:
            PreconditionFailed: booking is not completed
            Conflict: proof already submitted, or booking held by another cleaner
            InvalidRequest: missing or unsupported file
            UpstreamFailure: blob store or database unavailable
        """
        cleaner = UserService.get_cleaner(caller)
        booking = self._load_active(booking_id)

        if booking.cleaner_id != cleaner.id:
            raise Conflict("Booking is not assigned to you")
        if booking.payment_proof_url is not None:
            raise Conflict("Payment proof was already submitted for this booking")
        if booking.status != BookingStatus.COMPLETED:
            raise PreconditionFailed(f"Payment proof can only be submitted for completed bookings "
                                     f"(booking is {booking.status.value})")

        now = self.clock.now()
        proof_url = self.file_service.save_payment_proof(file, booking.id, now)
        TransactionHelper.on_rollback(lambda: self.file_service.delete_payment_proof(proof_url))

        result = db.session.execute(
            update(Booking)
            .where(Booking.id == booking.id,
                   Booking.is_deleted.is_(False),
                   Booking.cleaner_id == cleaner.id,
                   Booking.status == BookingStatus.COMPLETED,
                   Booking.payment_proof_url.is_(None))
            .values(payment_proof_url=proof_url)
            .execution_options(synchronize_session='fetch')
        )
        if result.rowcount != 1:
            logger.warning(f"Payment proof {proof_url} for booking {booking.id} lost a race")
            raise Conflict("Booking changed, please refresh and retry")

        self.verification_service.verify_payment(booking.id, now, actor_user_id=caller.user_id)

        db.session.refresh(booking)
        logger.info(f"Payment proof submitted for booking {booking.id} by cleaner {cleaner.id}")
        return booking

    @TransactionHelper.with_transaction
    def create_booking(self, caller: CallerContext, service_id: int, scheduled_at,
                       address: Optional[str] = None) -> Booking:
        """
        Create a pending booking for the calling customer. The price is fixed
        from the service at creation time.
        """
        if caller is None:
            raise NotAuthenticated()
        if caller.role != UserRole.USER:
            raise AccessDenied("Only customers can create bookings")
        if scheduled_at is None:
            raise InvalidRequest("scheduled_at is required")

        service = db.session.get(Service, service_id) if service_id is not None else None
        if not service or not service.is_active:
            raise NotFound("Service not found")

        booking = Booking()
        booking.customer_id = caller.user_id
        booking.service_id = service.id
        booking.status = INITIAL_STATUS
        booking.scheduled_at = scheduled_at
        booking.address = address
        booking.amount = service.base_price
        booking.total_pause_duration = 0
        db.session.add(booking)
        db.session.flush()

        self.audit_service.log_action(
            action='create_booking',
            entity_type='booking',
            entity_id=booking.id,
            details={'service': service.name, 'amount': str(service.base_price),
                     'scheduled_at': scheduled_at.isoformat()},
            user_id=caller.user_id
        )
        self.notification_service.booking_changed(booking, 'booking.created')

        logger.info(f"Booking {booking.id} created by user {caller.user_id} for {service.name}")
        return booking

    def get_booking(self, caller: CallerContext, booking_id: int) -> Booking:
        """A booking the caller may see: own, assigned, in the open pool, or any for admins."""
        if caller is None:
            raise NotAuthenticated()
        booking = self._load_active(booking_id)

        if caller.is_admin or booking.customer_id == caller.user_id:
            return booking
        if caller.is_cleaner:
            cleaner = UserService.get_cleaner(caller)
            if booking.cleaner_id == cleaner.id or booking.status == BookingStatus.PENDING:
                return booking
        raise NotFound("Booking not found")

    @staticmethod
    def list_customer_bookings(caller: CallerContext) -> List[Booking]:
        """The caller's own bookings, newest scheduled first."""
        if caller is None:
            raise NotAuthenticated()
        return Booking.query.filter(
            Booking.customer_id == caller.user_id,
            Booking.is_deleted.is_(False)
        ).order_by(Booking.scheduled_at.desc(), Booking.id.desc()).all()

    @TransactionHelper.with_transaction
    def soft_delete_booking(self, caller: CallerContext, booking_id: int) -> Booking:
        """Hide a booking from every view. Admin only."""
        require_admin(caller)

        now = self.clock.now()
        result = db.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=now)
            .execution_options(synchronize_session='fetch')
        )
        if result.rowcount != 1:
            raise NotFound("Booking not found")

        booking = db.session.get(Booking, booking_id)
        self.audit_service.log_action(
            action='soft_delete_booking',
            entity_type='booking',
            entity_id=booking_id,
            details={'status': booking.status.value},
            user_id=caller.user_id
        )
        self.notification_service.booking_changed(booking, 'booking.deleted')

        logger.info(f"Booking {booking_id} soft-deleted by admin {caller.user_id}")
        return booking
