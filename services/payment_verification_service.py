"""
Payment Verification Service

The step that turns a completed job with a fresh payment proof into money for
the cleaner: mark the booking payment_verified, look up the payout in the
service rate table, credit the cleaner's balance and append the earnings
history entry.

verify_payment does not commit. It is called from inside the transaction that
stored the proof so the proof, the status change and the credit land together
or not at all.
"""

from decimal import Decimal
import logging
from flask import current_app
from sqlalchemy import update
from models import db, Booking, Cleaner, CleanerEarning
from .booking_state import VERIFY_PAYMENT
from .exceptions import Conflict, NotFound
from .audit_service import AuditService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class PaymentVerificationService:
    """Service class for verifying payments and crediting cleaners"""

    def __init__(self, notification_service=None):
        self.audit_service = AuditService()
        self.notification_service = notification_service or NotificationService()

    @staticmethod
    def payout_for(service) -> Decimal:
        """Fixed payout for a service from the rate table, or the configured default."""
        if service is not None and service.cleaner_payout is not None:
            return Decimal(service.cleaner_payout)
        return Decimal(str(current_app.config.get('DEFAULT_CLEANER_PAYOUT', '200.00')))

    def verify_payment(self, booking_id: int, now, actor_user_id=None) -> CleanerEarning:
        """
        Verify a completed booking whose proof has just been stored.

        Raises:
            NotFound: booking missing or deleted
            Conflict: booking was already verified or is no longer completed
        """
        result = db.session.execute(
            update(Booking)
            .where(Booking.id == booking_id,
                   Booking.is_deleted.is_(False),
                   Booking.status.in_(list(VERIFY_PAYMENT.sources)),
                   Booking.payment_proof_url.isnot(None),
                   Booking.payment_collected_at.is_(None),
                   Booking.cleaner_id.isnot(None))
            .values(status=VERIFY_PAYMENT.target, **VERIFY_PAYMENT.effects(None, now))
            .execution_options(synchronize_session='fetch')
        )

        booking = db.session.get(Booking, booking_id)
        if result.rowcount != 1:
            if booking is None or booking.is_deleted:
                raise NotFound("Booking not found")
            logger.warning(f"Payment verification skipped for booking {booking_id}: "
                           f"status {booking.status.value}, already collected at {booking.payment_collected_at}")
            raise Conflict("Payment for this booking was already verified")

        payout = self.payout_for(booking.service)

        # SQL-side increment so concurrent credits and withdrawals never lose updates
        db.session.execute(
            update(Cleaner)
            .where(Cleaner.id == booking.cleaner_id)
            .values(earnings_balance=Cleaner.earnings_balance + payout)
            .execution_options(synchronize_session='fetch')
        )

        earning = CleanerEarning()
        earning.cleaner_id = booking.cleaner_id
        earning.booking_id = booking.id
        earning.amount = payout
        earning.service = booking.service.name if booking.service else None
        earning.earned_at = now
        db.session.add(earning)

        self.audit_service.log_action(
            action='verify_payment',
            entity_type='booking',
            entity_id=booking.id,
            details={
                'cleaner_id': booking.cleaner_id,
                'payout': str(payout),
                'amount': str(booking.amount),
                'payment_proof_url': booking.payment_proof_url
            },
            user_id=actor_user_id
        )

        self.notification_service.booking_changed(booking, 'booking.payment_verified')
        self.notification_service.earnings_changed(booking.cleaner_id, 'earnings.credited', payout)

        logger.info(f"Payment verified for booking {booking.id}: credited ₹{payout} to cleaner {booking.cleaner_id}")
        return earning
