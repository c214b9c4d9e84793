"""
Unit tests for customer reviews and the cleaner average rating
"""

from datetime import datetime
import pytest

from app import db
from models import Review, BookingStatus
from services.review_service import ReviewService, parse_rating
from services.exceptions import (NotFound, Conflict, PreconditionFailed, InvalidRequest, AccessDenied)
from tests.factories import BookingFactory, ReviewFactory, UserFactory

pytestmark = pytest.mark.unit

DONE = datetime(2026, 3, 9, 16, 0)


def finished_booking(customer, cleaner, service, status=BookingStatus.PAYMENT_VERIFIED, **extra):
    fields = dict(customer=customer, cleaner=cleaner, service=service, status=status,
                  picked_at=DONE, started_at=DONE, completed_at=DONE)
    if status == BookingStatus.PAYMENT_VERIFIED:
        fields.update(payment_collected_at=DONE, payment_proof_url='/uploads/payment-proofs/x.jpg')
    fields.update(extra)
    return BookingFactory(**fields)


@pytest.fixture
def review_service(app, clock):
    return ReviewService(clock=clock)


class TestCustomerReviews:

    def test_create_list_update_delete(self, review_service, customer, customer_caller, cleaner,
                                       service, clock, db_session):
        job = finished_booking(customer, cleaner, service)

        review = review_service.create_review(customer_caller, job.id, 4, '  Spotless kitchen  ')
        assert review.is_published is False
        assert review.comment == 'Spotless kitchen'
        assert review.created_at == clock.now()
        assert [r.id for r in ReviewService.list_reviews(customer_caller)] == [review.id]

        review.is_published = True
        db.session.commit()

        clock.advance(hours=2)
        edited = review_service.update_review(customer_caller, review.id, '5', 'Even better on a second look')
        assert edited.rating == 5
        assert edited.is_published is False
        assert edited.updated_at == clock.now()

        review_service.delete_review(customer_caller, review.id)
        db.session.expire_all()
        stored = db.session.get(Review, review.id)
        assert stored.is_deleted is True
        assert stored.deleted_at == clock.now()
        assert ReviewService.list_reviews(customer_caller) == []

    def test_unfinished_booking_cannot_be_reviewed(self, review_service, customer, customer_caller,
                                                   service, db_session):
        pending = BookingFactory(customer=customer, service=service)
        with pytest.raises(PreconditionFailed):
            review_service.create_review(customer_caller, pending.id, 5)

    def test_completed_but_unpaid_booking_can_be_reviewed(self, review_service, customer, customer_caller,
                                                          cleaner, service, db_session):
        job = finished_booking(customer, cleaner, service, status=BookingStatus.COMPLETED)
        assert review_service.create_review(customer_caller, job.id, 3).booking_id == job.id

    def test_one_live_review_per_booking(self, review_service, customer, customer_caller, cleaner,
                                         service, db_session):
        job = finished_booking(customer, cleaner, service)
        first = review_service.create_review(customer_caller, job.id, 4)

        with pytest.raises(Conflict):
            review_service.create_review(customer_caller, job.id, 2)

        review_service.delete_review(customer_caller, first.id)
        assert review_service.create_review(customer_caller, job.id, 2).rating == 2

    def test_other_customers_booking_and_review_are_hidden(self, review_service, customer, customer_caller,
                                                           cleaner, service, db_session):
        from services.identity import CallerContext
        stranger = CallerContext.for_user(UserFactory())
        job = finished_booking(customer, cleaner, service)
        review = review_service.create_review(customer_caller, job.id, 5)

        with pytest.raises(NotFound):
            review_service.create_review(stranger, job.id, 1)
        with pytest.raises(NotFound):
            review_service.update_review(stranger, review.id, 1)
        with pytest.raises(NotFound):
            review_service.delete_review(stranger, review.id)

    def test_deleted_booking_cannot_be_reviewed(self, review_service, customer, customer_caller, cleaner,
                                                service, db_session):
        job = finished_booking(customer, cleaner, service, is_deleted=True, deleted_at=DONE)
        with pytest.raises(NotFound):
            review_service.create_review(customer_caller, job.id, 5)

    def test_cleaner_cannot_write_reviews(self, review_service, cleaner_caller, customer, cleaner,
                                          service, db_session):
        job = finished_booking(customer, cleaner, service)
        with pytest.raises(AccessDenied):
            review_service.create_review(cleaner_caller, job.id, 5)

    @pytest.mark.parametrize('raw', [0, 6, 4.5, True, None, 'five', ''])
    def test_bad_ratings_rejected(self, raw):
        with pytest.raises(InvalidRequest):
            parse_rating(raw)

    def test_publish_is_admin_only(self, review_service, customer, customer_caller, admin_caller,
                                   cleaner, service, db_session):
        job = finished_booking(customer, cleaner, service)
        review = review_service.create_review(customer_caller, job.id, 4)

        with pytest.raises(AccessDenied):
            review_service.publish_review(customer_caller, review.id)

        assert review_service.publish_review(admin_caller, review.id).is_published is True


class TestAverageRating:

    def test_average_over_published_live_reviews(self, app, customer, cleaner, other_cleaner,
                                                 service, db_session):
        jobs = [finished_booking(customer, cleaner, service) for _ in range(4)]
        ReviewFactory(user_id=customer.id, booking_id=jobs[0].id, rating=5)
        ReviewFactory(user_id=customer.id, booking_id=jobs[1].id, rating=4)
        ReviewFactory(user_id=customer.id, booking_id=jobs[2].id, rating=1, is_published=False)
        ReviewFactory(user_id=customer.id, booking_id=jobs[3].id, rating=1, is_deleted=True, deleted_at=DONE)

        elsewhere = finished_booking(customer, other_cleaner, service)
        ReviewFactory(user_id=customer.id, booking_id=elsewhere.id, rating=1)

        assert ReviewService.average_rating_for(cleaner) == 4.5
        assert ReviewService.average_rating_for(other_cleaner) == 1.0

    def test_reviews_on_deleted_bookings_do_not_count(self, app, customer, cleaner, service, db_session):
        kept = finished_booking(customer, cleaner, service)
        dropped = finished_booking(customer, cleaner, service, is_deleted=True, deleted_at=DONE)
        ReviewFactory(user_id=customer.id, booking_id=kept.id, rating=3)
        ReviewFactory(user_id=customer.id, booking_id=dropped.id, rating=5)

        assert ReviewService.average_rating_for(cleaner) == 3.0

    def test_no_reviews_means_no_rating(self, app, cleaner, db_session):
        assert ReviewService.average_rating_for(cleaner) is None
