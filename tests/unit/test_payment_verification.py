"""
Unit tests for payment proof submission and verification
"""

from datetime import datetime, timedelta
from decimal import Decimal
import os
import pytest
from sqlalchemy.exc import OperationalError

from app import db
from models import Booking, BookingStatus, Cleaner, CleanerEarning
from services.booking_state import check_invariants
from services.duration_service import active_duration, format_duration
from services.exceptions import Conflict, PreconditionFailed, InvalidRequest, UpstreamFailure
from services.payment_verification_service import PaymentVerificationService
from tests.factories import BookingFactory, ServiceFactory

pytestmark = pytest.mark.unit


def reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


def proof_folder(app):
    return os.path.join(app.config['UPLOAD_FOLDER'], 'payment-proofs')


def complete_booking(booking_service, caller, booking_id, clock):
    booking_service.pick_booking(caller, booking_id)
    clock.advance(minutes=5)
    booking_service.start_job(caller, booking_id)
    clock.advance(minutes=45)
    booking_service.complete_job(caller, booking_id)


@pytest.mark.workflow
def test_end_to_end_booking_scenario(booking_service, customer_caller, cleaner, cleaner_caller,
                                     service, clock, proof_file, app):
    scheduled = clock.now()
    created = booking_service.create_booking(customer_caller, service.id, scheduled, '4 Residency Road')
    booking_id = created.id
    assert reload(Booking, booking_id).amount == Decimal('500.00')

    booking_service.pick_booking(cleaner_caller, booking_id)
    assert reload(Booking, booking_id).status == BookingStatus.PICKED

    clock.set(scheduled + timedelta(minutes=10))
    booking_service.start_job(cleaner_caller, booking_id)
    assert reload(Booking, booking_id).started_at == scheduled + timedelta(minutes=10)

    clock.set(scheduled + timedelta(minutes=40))
    booking_service.pause_job(cleaner_caller, booking_id)
    assert reload(Booking, booking_id).paused_at == scheduled + timedelta(minutes=40)

    clock.set(scheduled + timedelta(minutes=50))
    booking_service.resume_job(cleaner_caller, booking_id)
    assert reload(Booking, booking_id).total_pause_duration == 10

    clock.set(scheduled + timedelta(minutes=70))
    booking_service.complete_job(cleaner_caller, booking_id)
    completed = reload(Booking, booking_id)
    assert completed.completed_at == scheduled + timedelta(minutes=70)
    assert active_duration(completed, clock.now()) == timedelta(minutes=50)
    assert format_duration(completed, clock.now() + timedelta(days=1)) == "0h 50m"

    clock.advance(minutes=3)
    booking_service.submit_payment_proof(cleaner_caller, booking_id, proof_file())

    verified = reload(Booking, booking_id)
    assert verified.status == BookingStatus.PAYMENT_VERIFIED
    assert verified.payment_collected_at == clock.now()
    assert verified.payment_proof_url.startswith('/uploads/payment-proofs/')
    assert check_invariants(verified) == []

    account = reload(Cleaner, cleaner.id)
    assert account.earnings_balance == Decimal('200.00')
    history = CleanerEarning.query.filter_by(cleaner_id=cleaner.id).all()
    assert len(history) == 1
    assert history[0].booking_id == booking_id
    assert history[0].amount == Decimal('200.00')
    assert history[0].service == 'Home Cleaning'


class TestSubmitPaymentProof:

    def test_proof_is_stored_in_blob_folder(self, booking_service, cleaner_caller, booking, clock,
                                            proof_file, app):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)
        booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file('receipt.PNG'))

        url = reload(Booking, booking.id).payment_proof_url
        filename = url.rsplit('/', 1)[1]
        assert filename.startswith(f"{booking.id}-")
        assert filename.endswith('.png')
        stored = os.path.join(app.config['UPLOAD_FOLDER'], 'payment-proofs', filename)
        assert os.path.exists(stored)

    def test_second_proof_is_rejected_and_not_credited_twice(self, booking_service, cleaner,
                                                             cleaner_caller, booking, clock, proof_file):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)
        booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())

        with pytest.raises(Conflict):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())

        assert reload(Cleaner, cleaner.id).earnings_balance == Decimal('200.00')
        assert CleanerEarning.query.filter_by(booking_id=booking.id).count() == 1

    def test_proof_requires_completed_job(self, booking_service, cleaner_caller, booking, clock, proof_file):
        booking_service.pick_booking(cleaner_caller, booking.id)
        booking_service.start_job(cleaner_caller, booking.id)

        with pytest.raises(PreconditionFailed):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())
        assert reload(Booking, booking.id).payment_proof_url is None

    def test_other_cleaner_cannot_submit(self, booking_service, cleaner_caller, other_cleaner_caller,
                                         booking, clock, proof_file):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)
        with pytest.raises(Conflict):
            booking_service.submit_payment_proof(other_cleaner_caller, booking.id, proof_file())

    def test_non_image_upload_rejected(self, booking_service, cleaner, cleaner_caller, booking, clock,
                                       proof_file):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)

        with pytest.raises(InvalidRequest):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file('notes.txt'))
        with pytest.raises(InvalidRequest):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, None)

        assert reload(Booking, booking.id).status == BookingStatus.COMPLETED
        assert reload(Cleaner, cleaner.id).earnings_balance == Decimal('0.00')

    def test_failed_credit_rolls_back_proof_and_status(self, booking_service, cleaner, cleaner_caller,
                                                       booking, clock, proof_file, monkeypatch, app):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)

        def broken_payout(service):
            raise RuntimeError("rate table unavailable")

        monkeypatch.setattr(PaymentVerificationService, 'payout_for', staticmethod(broken_payout))

        with pytest.raises(RuntimeError):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())

        unchanged = reload(Booking, booking.id)
        assert unchanged.status == BookingStatus.COMPLETED
        assert unchanged.payment_proof_url is None
        assert unchanged.payment_collected_at is None
        assert reload(Cleaner, cleaner.id).earnings_balance == Decimal('0.00')
        assert CleanerEarning.query.count() == 0
        assert os.listdir(proof_folder(app)) == []

    def test_retried_verification_keeps_one_stored_proof(self, booking_service, cleaner, cleaner_caller,
                                                        booking, clock, proof_file, monkeypatch, app):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)
        original_verify = PaymentVerificationService.verify_payment
        attempts = []

        def flaky_verify(self, *args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                clock.advance(seconds=1)
                raise OperationalError("UPDATE bookings", {}, Exception("connection reset"))
            return original_verify(self, *args, **kwargs)

        monkeypatch.setattr(PaymentVerificationService, 'verify_payment', flaky_verify)

        booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())

        verified = reload(Booking, booking.id)
        assert len(attempts) == 2
        assert verified.status == BookingStatus.PAYMENT_VERIFIED
        assert os.listdir(proof_folder(app)) == [verified.payment_proof_url.rsplit('/', 1)[1]]
        assert reload(Cleaner, cleaner.id).earnings_balance == Decimal('200.00')

    def test_blob_store_failure_surfaces_as_upstream_failure(self, booking_service, cleaner_caller,
                                                             booking, clock, proof_file, monkeypatch):
        complete_booking(booking_service, cleaner_caller, booking.id, clock)

        def disk_full(*args, **kwargs):
            raise OSError("No space left on device")

        monkeypatch.setattr('services.file_service.os.makedirs', disk_full)

        with pytest.raises(UpstreamFailure):
            booking_service.submit_payment_proof(cleaner_caller, booking.id, proof_file())
        assert reload(Booking, booking.id).status == BookingStatus.COMPLETED


class TestPayoutRates:

    def test_rate_table_payout(self, app, db_session):
        car_wash = ServiceFactory(name='Car Wash', base_price=300, cleaner_payout=150)
        assert PaymentVerificationService.payout_for(car_wash) == Decimal('150.00')

    def test_default_payout_when_rate_missing(self, app, db_session):
        app.config['DEFAULT_CLEANER_PAYOUT'] = Decimal('175.50')
        unpriced = ServiceFactory(cleaner_payout=None)
        assert PaymentVerificationService.payout_for(unpriced) == Decimal('175.50')

    def test_verification_credits_service_rate(self, booking_service, cleaner, cleaner_caller,
                                               customer, clock, proof_file, db_session):
        car_wash = ServiceFactory(name='Car Wash', base_price=300, cleaner_payout=150)
        wash = BookingFactory(customer=customer, service=car_wash)
        complete_booking(booking_service, cleaner_caller, wash.id, clock)
        booking_service.submit_payment_proof(cleaner_caller, wash.id, proof_file())

        assert reload(Cleaner, cleaner.id).earnings_balance == Decimal('150.00')
