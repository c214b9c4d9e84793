"""
Cleaner API Module
Cleaner-facing endpoints for the mobile app: booking queues, the job
lifecycle, payment proof upload, earnings and withdrawals.
"""

from flask import Blueprint, request
from flask_jwt_extended import jwt_required
import logging

from services.booking_service import BookingService
from services.dispatch_service import DispatchService
from services.earnings_service import EarningsService
from services.review_service import ReviewService
from services.user_service import UserService
from timezone_utils import app_clock
from utils.api_helpers import (get_current_caller, success, money, serialize_booking,
                               serialize_withdrawal, register_error_handlers)

logger = logging.getLogger(__name__)

# Create cleaner API blueprint
cleaner_api_bp = Blueprint('cleaner_api', __name__)
register_error_handlers(cleaner_api_bp)


def _booking_list(bookings):
    now = app_clock().now()
    return [serialize_booking(b, now) for b in bookings]


@cleaner_api_bp.route('/api/v1/cleaner/bookings/available', methods=['GET'])
@jwt_required()
def available_bookings():
    """Open pickup pool"""
    UserService.get_cleaner(get_current_caller())
    bookings = DispatchService.available_bookings()
    return success(_booking_list(bookings))


@cleaner_api_bp.route('/api/v1/cleaner/bookings/current', methods=['GET'])
@jwt_required()
def current_bookings():
    cleaner = UserService.get_cleaner(get_current_caller())
    bookings = DispatchService.current_bookings(cleaner)
    return success(_booking_list(bookings))


@cleaner_api_bp.route('/api/v1/cleaner/bookings/history', methods=['GET'])
@jwt_required()
def booking_history():
    cleaner = UserService.get_cleaner(get_current_caller())
    bookings = DispatchService.history_bookings(cleaner)
    return success(_booking_list(bookings))


@cleaner_api_bp.route('/api/v1/cleaner/bookings/<int:booking_id>', methods=['GET'])
@jwt_required()
def get_booking(booking_id):
    service = BookingService()
    booking = service.get_booking(get_current_caller(), booking_id)
    return success(serialize_booking(booking, service.clock.now()))


# Lifecycle transitions, one endpoint per action
TRANSITION_ACTIONS = {
    'pick': 'pick_booking',
    'start': 'start_job',
    'pause': 'pause_job',
    'resume': 'resume_job',
    'complete': 'complete_job',
}


@cleaner_api_bp.route('/api/v1/cleaner/bookings/<int:booking_id>/<action>', methods=['POST'])
@jwt_required()
def transition_booking(booking_id, action):
    """Pick, start, pause, resume or complete a booking"""
    if action not in TRANSITION_ACTIONS:
        return {
            'success': False,
            'error': 'NOT_FOUND',
            'message': f'Unknown booking action: {action}'
        }, 404

    caller = get_current_caller()
    service = BookingService()
    booking = getattr(service, TRANSITION_ACTIONS[action])(caller, booking_id)
    return success(serialize_booking(booking, service.clock.now()))


@cleaner_api_bp.route('/api/v1/cleaner/bookings/<int:booking_id>/payment-proof', methods=['POST'])
@jwt_required()
def submit_payment_proof(booking_id):
    """Upload a payment proof image; verifies the payment and credits the cleaner"""
    caller = get_current_caller()
    service = BookingService()
    booking = service.submit_payment_proof(caller, booking_id, request.files.get('file'))
    return success(serialize_booking(booking, service.clock.now()))


@cleaner_api_bp.route('/api/v1/cleaner/earnings', methods=['GET'])
@jwt_required()
def earnings_summary():
    cleaner = UserService.get_cleaner(get_current_caller())
    rating = ReviewService.average_rating_for(cleaner)
    summary = EarningsService().get_summary(cleaner, average_rating=rating)

    return success({
        'today': money(summary['today']),
        'this_week': money(summary['this_week']),
        'this_month': money(summary['this_month']),
        'pending_cashout': money(summary['pending_cashout']),
        'completed_jobs': summary['completed_jobs'],
        'total_hours': summary['total_hours'],
        'average_rating': summary['average_rating'],
    })


@cleaner_api_bp.route('/api/v1/cleaner/earnings/account', methods=['GET'])
@jwt_required()
def earnings_account():
    cleaner = UserService.get_cleaner(get_current_caller())
    account = EarningsService.get_earnings_account(cleaner)
    return success({
        'earnings_balance': money(account['earnings_balance']),
        'earnings_history': [entry.to_dict() for entry in account['earnings_history']],
    })


@cleaner_api_bp.route('/api/v1/cleaner/withdrawals', methods=['GET'])
@jwt_required()
def list_withdrawals():
    cleaner = UserService.get_cleaner(get_current_caller())
    return success([serialize_withdrawal(w) for w in EarningsService.list_withdrawals(cleaner)])


@cleaner_api_bp.route('/api/v1/cleaner/withdrawals', methods=['POST'])
@jwt_required()
def request_withdrawal():
    caller = get_current_caller()
    data = request.get_json(silent=True) or {}

    withdrawal = EarningsService().request_withdrawal(caller, data.get('amount'))
    logger.info(f"Withdrawal {withdrawal.id} created via API for user {caller.user_id}")
    return success(serialize_withdrawal(withdrawal), status=201)
