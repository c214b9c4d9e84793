"""
Shared helpers for the JSON API blueprints: caller resolution, response
envelopes, serializers and error handler registration.
"""

from datetime import datetime
from decimal import Decimal
import logging
import pytz
from flask import jsonify, g, current_app
from flask_jwt_extended import get_jwt_identity

from services.exceptions import BookingError, InvalidRequest
from services.user_service import UserService
from services.duration_service import format_duration, pause_minutes

logger = logging.getLogger(__name__)


def get_current_caller():
    """CallerContext for the JWT on this request"""
    caller = UserService.resolve_caller(get_jwt_identity())
    g.caller_user_id = caller.user_id
    return caller


def success(payload=None, status=200, **fields):
    body = {'success': True}
    if payload is not None:
        body['data'] = payload
    body.update(fields)
    return jsonify(body), status


def money(value):
    if value is None:
        return None
    return float(Decimal(value))


def iso(value):
    return value.isoformat() if value else None


def parse_datetime(raw, field_name='scheduled_at'):
    """ISO-8601 string to a naive datetime in the app timezone."""
    if not raw:
        raise InvalidRequest(f"{field_name} is required")
    try:
        value = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    except ValueError:
        raise InvalidRequest(f"{field_name} must be an ISO-8601 datetime")

    if value.tzinfo is not None:
        tz = pytz.timezone(current_app.config.get('APP_TIMEZONE', 'Asia/Kolkata'))
        value = value.astimezone(tz).replace(tzinfo=None)
    return value


def serialize_booking(booking, now):
    return {
        'id': booking.id,
        'uuid': booking.uuid,
        'status': booking.status.value,
        'service_id': booking.service_id,
        'service': booking.service.name if booking.service else None,
        'customer_id': booking.customer_id,
        'cleaner_id': booking.cleaner_id,
        'address': booking.address,
        'amount': money(booking.amount),
        'scheduled_at': iso(booking.scheduled_at),
        'picked_at': iso(booking.picked_at),
        'started_at': iso(booking.started_at),
        'paused_at': iso(booking.paused_at),
        'completed_at': iso(booking.completed_at),
        'payment_collected_at': iso(booking.payment_collected_at),
        'payment_proof_url': booking.payment_proof_url,
        'total_pause_duration': booking.total_pause_duration or 0,
        'current_pause_minutes': pause_minutes(booking, now),
        'duration': format_duration(booking, now),
    }


def serialize_withdrawal(withdrawal):
    return {
        'id': withdrawal.id,
        'amount': money(withdrawal.amount),
        'created_at': iso(withdrawal.created_at),
    }


def serialize_review(review):
    booking = review.booking
    return {
        'id': review.id,
        'booking_id': review.booking_id,
        'service': booking.service.name if booking and booking.service else None,
        'rating': review.rating,
        'comment': review.comment,
        'is_published': review.is_published,
        'created_at': iso(review.created_at),
        'updated_at': iso(review.updated_at),
    }


def register_error_handlers(blueprint):
    """Map service errors onto the JSON error envelope for a blueprint."""

    @blueprint.errorhandler(BookingError)
    def handle_booking_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @blueprint.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'success': False,
            'error': 'INVALID_REQUEST',
            'message': getattr(error, 'description', 'Bad request')
        }), 400

    @blueprint.errorhandler(413)
    def payload_too_large(error):
        limit = current_app.config.get('MAX_CONTENT_LENGTH')
        message = 'Upload too large'
        if limit:
            message = f"Upload too large. Maximum size: {limit} bytes"
        return jsonify({
            'success': False,
            'error': 'INVALID_REQUEST',
            'message': message
        }), 413

    @blueprint.errorhandler(500)
    def internal_error(error):
        original = getattr(error, 'original_exception', None) or error
        logger.error(f"Unhandled error: {str(original)}", exc_info=original)
        return jsonify({
            'success': False,
            'error': 'INTERNAL_ERROR',
            'message': 'Internal server error'
        }), 500
