"""
Review Service

Customer reviews of finished bookings. New and edited reviews wait for an
admin to publish them; only published reviews count towards a cleaner's
average rating.
"""

from typing import Optional, List
import logging
from sqlalchemy import func
from models import db, Review, Booking, BookingStatus, Cleaner, UserRole
from timezone_utils import app_clock
from .identity import CallerContext
from .exceptions import NotAuthenticated, AccessDenied, NotFound, Conflict, PreconditionFailed, InvalidRequest
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .user_service import require_admin

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (BookingStatus.COMPLETED, BookingStatus.PAYMENT_VERIFIED)
MAX_COMMENT_LENGTH = 2000


def parse_rating(raw) -> int:
    """Whole-star rating between 1 and 5."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        rating = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        rating = int(raw.strip())
    else:
        rating = None

    if rating is None or not 1 <= rating <= 5:
        raise InvalidRequest("rating must be a whole number from 1 to 5")
    return rating


def clean_comment(raw) -> Optional[str]:
    if raw is None:
        return None
    comment = str(raw).strip()
    if len(comment) > MAX_COMMENT_LENGTH:
        raise InvalidRequest(f"comment must be at most {MAX_COMMENT_LENGTH} characters")
    return comment or None


def _require_customer(caller: Optional[CallerContext]) -> CallerContext:
    if caller is None:
        raise NotAuthenticated()
    if caller.role != UserRole.USER:
        raise AccessDenied("Only customers can review bookings")
    return caller


class ReviewService:
    """Service class for customer reviews"""

    def __init__(self, clock=None):
        self.clock = clock or app_clock()
        self.audit_service = AuditService()

    @staticmethod
    def _load_own(caller: CallerContext, review_id: int) -> Review:
        review = db.session.get(Review, review_id)
        if not review or review.is_deleted or review.user_id != caller.user_id:
            raise NotFound("Review not found")
        return review

    @TransactionHelper.with_transaction
    def create_review(self, caller: CallerContext, booking_id: int, rating, comment=None) -> Review:
        """
        Review one of the caller's finished bookings. One live review per booking.

        Raises:
            NotFound: booking missing, deleted or not the caller's
            PreconditionFailed: the job is not finished yet
            Conflict: the booking already has a review
            InvalidRequest: rating or comment out of range
        """
        _require_customer(caller)
        rating = parse_rating(rating)
        comment = clean_comment(comment)

        booking = db.session.get(Booking, booking_id) if booking_id is not None else None
        if not booking or booking.is_deleted or booking.customer_id != caller.user_id:
            raise NotFound("Booking not found")
        if booking.status not in REVIEWABLE_STATUSES:
            raise PreconditionFailed(f"Only finished bookings can be reviewed (booking is {booking.status.value})")

        existing = Review.query.filter(
            Review.booking_id == booking.id,
            Review.is_deleted.is_(False)
        ).first()
        if existing:
            raise Conflict("This booking has already been reviewed")

        review = Review()
        review.user_id = caller.user_id
        review.booking_id = booking.id
        review.rating = rating
        review.comment = comment
        review.is_published = False
        review.created_at = self.clock.now()
        db.session.add(review)
        db.session.flush()

        self.audit_service.log_action(
            action='create_review',
            entity_type='review',
            entity_id=review.id,
            details={'booking_id': booking.id, 'rating': rating},
            user_id=caller.user_id
        )
        logger.info(f"Review {review.id} ({rating} stars) created for booking {booking.id} by user {caller.user_id}")
        return review

    @staticmethod
    def list_reviews(caller: CallerContext) -> List[Review]:
        """The caller's own live reviews, newest first."""
        if caller is None:
            raise NotAuthenticated()
        return Review.query.filter(
            Review.user_id == caller.user_id,
            Review.is_deleted.is_(False)
        ).order_by(Review.created_at.desc(), Review.id.desc()).all()

    @TransactionHelper.with_transaction
    def update_review(self, caller: CallerContext, review_id: int, rating, comment=None) -> Review:
        """Edit a review; the edit goes back to waiting for publication."""
        _require_customer(caller)
        rating = parse_rating(rating)
        comment = clean_comment(comment)
        review = self._load_own(caller, review_id)

        review.rating = rating
        review.comment = comment
        review.is_published = False
        review.updated_at = self.clock.now()

        self.audit_service.log_action(
            action='update_review',
            entity_type='review',
            entity_id=review.id,
            details={'rating': rating},
            user_id=caller.user_id
        )
        logger.info(f"Review {review.id} updated by user {caller.user_id}")
        return review

    @TransactionHelper.with_transaction
    def delete_review(self, caller: CallerContext, review_id: int) -> Review:
        _require_customer(caller)
        review = self._load_own(caller, review_id)

        review.is_deleted = True
        review.deleted_at = self.clock.now()

        self.audit_service.log_action(
            action='delete_review',
            entity_type='review',
            entity_id=review.id,
            user_id=caller.user_id
        )
        logger.info(f"Review {review.id} soft-deleted by user {caller.user_id}")
        return review

    @TransactionHelper.with_transaction
    def publish_review(self, caller: CallerContext, review_id: int) -> Review:
        """Make a review visible and count it in the cleaner's rating. Admin only."""
        require_admin(caller)
        review = db.session.get(Review, review_id)
        if not review or review.is_deleted:
            raise NotFound("Review not found")

        review.is_published = True

        self.audit_service.log_action(
            action='publish_review',
            entity_type='review',
            entity_id=review.id,
            user_id=caller.user_id
        )
        logger.info(f"Review {review.id} published by admin {caller.user_id}")
        return review

    @staticmethod
    def average_rating_for(cleaner: Cleaner) -> Optional[float]:
        """Mean of published, live reviews on the cleaner's live bookings; None without any."""
        average = db.session.query(func.avg(Review.rating)).join(
            Booking, Review.booking_id == Booking.id
        ).filter(
            Booking.cleaner_id == cleaner.id,
            Booking.is_deleted.is_(False),
            Review.is_deleted.is_(False),
            Review.is_published.is_(True)
        ).scalar()

        if average is None:
            return None
        return round(float(average), 2)
