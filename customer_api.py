"""
Customer API Module
Booking creation and tracking for customers, and their reviews
"""

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
import logging

from services.booking_service import BookingService
from services.review_service import ReviewService
from utils.api_helpers import (get_current_caller, success, serialize_booking,
                               serialize_review, parse_datetime, register_error_handlers)
from services.exceptions import InvalidRequest

logger = logging.getLogger(__name__)

customer_api_bp = Blueprint('customer_api', __name__)
register_error_handlers(customer_api_bp)


@customer_api_bp.route('/api/v1/customer/bookings', methods=['POST'])
@jwt_required()
def create_booking():
    """Book a service; the booking starts in the open pickup pool"""
    caller = get_current_caller()
    data = request.get_json(silent=True) or {}

    service_id = data.get('service_id')
    try:
        service_id = int(service_id)
    except (TypeError, ValueError):
        raise InvalidRequest("service_id is required")

    scheduled_at = parse_datetime(data.get('scheduled_at'))
    address = (data.get('address') or '').strip() or None

    service = BookingService()
    booking = service.create_booking(caller, service_id, scheduled_at, address)
    return success(serialize_booking(booking, service.clock.now()), status=201)


@customer_api_bp.route('/api/v1/customer/bookings', methods=['GET'])
@jwt_required()
def list_bookings():
    caller = get_current_caller()
    service = BookingService()
    now = service.clock.now()
    return success([serialize_booking(b, now) for b in service.list_customer_bookings(caller)])


@customer_api_bp.route('/api/v1/customer/bookings/<int:booking_id>', methods=['GET'])
@jwt_required()
def get_booking(booking_id):
    service = BookingService()
    booking = service.get_booking(get_current_caller(), booking_id)
    return success(serialize_booking(booking, service.clock.now()))


@customer_api_bp.route('/api/v1/customer/reviews', methods=['POST'])
@jwt_required()
def create_review():
    """Review a finished booking; it shows up once an admin publishes it"""
    caller = get_current_caller()
    data = request.get_json(silent=True) or {}

    booking_id = data.get('booking_id')
    try:
        booking_id = int(booking_id)
    except (TypeError, ValueError):
        raise InvalidRequest("booking_id is required")

    review = ReviewService().create_review(caller, booking_id, data.get('rating'), data.get('comment'))
    return success(serialize_review(review), status=201)


@customer_api_bp.route('/api/v1/customer/reviews', methods=['GET'])
@jwt_required()
def list_reviews():
    reviews = ReviewService.list_reviews(get_current_caller())
    return success([serialize_review(r) for r in reviews])


@customer_api_bp.route('/api/v1/customer/reviews/<int:review_id>', methods=['POST'])
@jwt_required()
def update_review(review_id):
    data = request.get_json(silent=True) or {}
    review = ReviewService().update_review(get_current_caller(), review_id,
                                           data.get('rating'), data.get('comment'))
    return success(serialize_review(review))


@customer_api_bp.route('/api/v1/customer/reviews/<int:review_id>/delete', methods=['POST'])
@jwt_required()
def delete_review(review_id):
    ReviewService().delete_review(get_current_caller(), review_id)
    return success({'review_id': review_id, 'deleted': True})
