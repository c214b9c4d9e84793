"""
Admin API Module
Soft-delete and restore of users and bookings, review publication
"""

from flask import Blueprint
from flask_jwt_extended import jwt_required
import logging

from services.booking_service import BookingService
from services.user_service import UserService
from services.review_service import ReviewService
from utils.api_helpers import get_current_caller, success, serialize_review, register_error_handlers

logger = logging.getLogger(__name__)

admin_api_bp = Blueprint('admin_api', __name__)
register_error_handlers(admin_api_bp)


@admin_api_bp.route('/api/v1/admin/users/<int:user_id>/delete', methods=['POST'])
@jwt_required()
def delete_user(user_id):
    """Soft-delete a user together with their bookings, reviews and payments"""
    counts = UserService().soft_delete_user(get_current_caller(), user_id)
    return success({'user_id': user_id, 'deleted': counts})


@admin_api_bp.route('/api/v1/admin/users/<int:user_id>/restore', methods=['POST'])
@jwt_required()
def restore_user(user_id):
    counts = UserService().restore_user(get_current_caller(), user_id)
    return success({'user_id': user_id, 'restored': counts})


@admin_api_bp.route('/api/v1/admin/bookings/<int:booking_id>/delete', methods=['POST'])
@jwt_required()
def delete_booking(booking_id):
    BookingService().soft_delete_booking(get_current_caller(), booking_id)
    return success({'booking_id': booking_id, 'deleted': True})


@admin_api_bp.route('/api/v1/admin/reviews/<int:review_id>/publish', methods=['POST'])
@jwt_required()
def publish_review(review_id):
    """Publish a customer review so it counts in the cleaner's rating"""
    review = ReviewService().publish_review(get_current_caller(), review_id)
    return success(serialize_review(review))
