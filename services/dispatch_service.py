"""
Dispatch Service

What a cleaner sees: the open pool of pending bookings merged with their own
unfinished jobs ("current"), and their verified jobs ("history"). Every live
booking visible to a cleaner lands in exactly one of the two lists.
"""

from typing import List
import logging
from sqlalchemy import or_, and_
from models import Booking, BookingStatus, Cleaner

logger = logging.getLogger(__name__)

OPEN_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.PICKED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.PAUSED,
    BookingStatus.COMPLETED,
)


class DispatchService:
    """Service class for cleaner booking queues"""

    @staticmethod
    def available_bookings() -> List[Booking]:
        """Unassigned pending bookings, soonest first."""
        return Booking.query.filter(
            Booking.status == BookingStatus.PENDING,
            Booking.cleaner_id.is_(None),
            Booking.is_deleted.is_(False)
        ).order_by(Booking.scheduled_at.asc(), Booking.id.asc()).all()

    @staticmethod
    def current_bookings(cleaner: Cleaner) -> List[Booking]:
        """
        Pending pool plus the cleaner's own jobs not yet paid out,
        ascending by scheduled time. One query, so no duplicates.
        """
        bookings = Booking.query.filter(
            Booking.is_deleted.is_(False),
            or_(
                Booking.status == BookingStatus.PENDING,
                and_(
                    Booking.cleaner_id == cleaner.id,
                    Booking.status.in_(OPEN_STATUSES),
                    Booking.payment_collected_at.is_(None)
                )
            )
        ).order_by(Booking.scheduled_at.asc(), Booking.id.asc()).all()

        logger.debug(f"Cleaner {cleaner.id} current queue: {len(bookings)} booking(s)")
        return bookings

    @staticmethod
    def history_bookings(cleaner: Cleaner) -> List[Booking]:
        """The cleaner's verified jobs, most recently completed first."""
        return Booking.query.filter(
            Booking.cleaner_id == cleaner.id,
            Booking.is_deleted.is_(False),
            Booking.status == BookingStatus.PAYMENT_VERIFIED,
            Booking.payment_collected_at.isnot(None)
        ).order_by(Booking.completed_at.desc(), Booking.id.desc()).all()
