"""
Earnings Service

Handles the cleaner earnings ledger: period summaries for the earnings
screen, the balance with its credit history, and withdrawals against the
balance.
"""

from typing import Optional, Dict, Any, List
from decimal import Decimal, InvalidOperation
import logging
from flask import current_app
from sqlalchemy import update
from models import db, Booking, Cleaner, CleanerEarning, Withdrawal
from timezone_utils import app_clock, start_of_day, start_of_week, start_of_month
from .identity import CallerContext
from .exceptions import InvalidRequest, InsufficientBalance
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .notification_service import NotificationService
from .user_service import UserService
from .duration_service import active_hours

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
CENTS = Decimal('0.01')


def parse_amount(raw) -> Decimal:
    """Parse a client-supplied money amount into a positive 2-place Decimal."""
    try:
        amount = Decimal(str(raw)).quantize(CENTS)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidRequest("Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise InvalidRequest("Amount must be greater than zero")
    return amount


class EarningsService:
    """Service class for cleaner earnings and withdrawals"""

    def __init__(self, clock=None, notification_service=None):
        self.clock = clock or app_clock()
        self.audit_service = AuditService()
        self.notification_service = notification_service or NotificationService()

    def get_summary(self, cleaner: Cleaner, now=None, average_rating: Optional[float] = None) -> Dict[str, Any]:
        """
        Earnings screen summary over the cleaner's paid bookings.

        Windows start at midnight today, the configured first weekday and
        the first of the month; all of them run up to `now`.
        """
        now = now or self.clock.now()
        first_weekday = current_app.config.get('WEEK_START_DAY', 0)

        day_start = start_of_day(now)
        week_start = start_of_week(now, first_weekday)
        month_start = start_of_month(now)

        paid = Booking.query.filter(
            Booking.cleaner_id == cleaner.id,
            Booking.is_deleted.is_(False),
            Booking.payment_collected_at.isnot(None)
        ).all()

        totals = {'today': ZERO, 'this_week': ZERO, 'this_month': ZERO}
        total_hours = 0.0
        for booking in paid:
            amount = Decimal(booking.amount or 0)
            collected = booking.payment_collected_at
            if day_start <= collected <= now:
                totals['today'] += amount
            if week_start <= collected <= now:
                totals['this_week'] += amount
            if month_start <= collected <= now:
                totals['this_month'] += amount
            total_hours += active_hours(booking, now)

        return {
            'today': totals['today'],
            'this_week': totals['this_week'],
            'this_month': totals['this_month'],
            'pending_cashout': Decimal(cleaner.earnings_balance or 0),
            'completed_jobs': len(paid),
            'total_hours': round(total_hours, 2),
            'average_rating': average_rating,
        }

    @staticmethod
    def get_earnings_account(cleaner: Cleaner) -> Dict[str, Any]:
        """Balance plus the ordered credit history."""
        history = CleanerEarning.query.filter_by(cleaner_id=cleaner.id) \
                                      .order_by(CleanerEarning.earned_at.asc(), CleanerEarning.id.asc()).all()
        return {
            'earnings_balance': Decimal(cleaner.earnings_balance or 0),
            'earnings_history': history,
        }

    @staticmethod
    def list_withdrawals(cleaner: Cleaner) -> List[Withdrawal]:
        return Withdrawal.query.filter_by(cleaner_id=cleaner.id) \
                               .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc()).all()

    @TransactionHelper.with_transaction
    def request_withdrawal(self, caller: CallerContext, raw_amount) -> Withdrawal:
        """
        Withdraw from the caller's balance.

        The balance check and the decrement are one conditional UPDATE, so two
        concurrent withdrawals can never take the balance below zero.

        Raises:
            InvalidRequest: amount missing, not a number, or not positive
            InsufficientBalance: amount exceeds the current balance
        """
        amount = parse_amount(raw_amount)
        cleaner = UserService.get_cleaner(caller)

        result = db.session.execute(
            update(Cleaner)
            .where(Cleaner.id == cleaner.id, Cleaner.earnings_balance >= amount)
            .values(earnings_balance=Cleaner.earnings_balance - amount)
            .execution_options(synchronize_session='fetch')
        )
        if result.rowcount != 1:
            db.session.refresh(cleaner)
            logger.warning(f"Withdrawal of ₹{amount} refused for cleaner {cleaner.id}: "
                           f"balance ₹{cleaner.earnings_balance}")
            raise InsufficientBalance(f"Requested ₹{amount} exceeds available balance ₹{cleaner.earnings_balance}")

        withdrawal = Withdrawal()
        withdrawal.cleaner_id = cleaner.id
        withdrawal.amount = amount
        withdrawal.created_at = self.clock.now()
        db.session.add(withdrawal)
        db.session.flush()

        self.audit_service.log_action(
            action='request_withdrawal',
            entity_type='cleaner',
            entity_id=cleaner.id,
            details={'amount': str(amount), 'withdrawal_id': withdrawal.id},
            user_id=caller.user_id
        )
        self.notification_service.earnings_changed(cleaner.id, 'earnings.withdrawn', amount)

        logger.info(f"Cleaner {cleaner.id} withdrew ₹{amount}")
        return withdrawal
