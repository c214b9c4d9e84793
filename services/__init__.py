"""
Service Layer Architecture

Business logic for the booking lifecycle lives here, not in the route
handlers. Every service call receives the caller explicitly, raises a
BookingError subclass on failure, and runs its writes as one transaction.

Services Architecture:
- **BookingService**: booking creation, pickup, start/pause/resume/complete, payment proof
- **PaymentVerificationService**: marks proofed bookings verified and credits the cleaner
- **DispatchService**: open pool, current and history queues for cleaners
- **EarningsService**: earnings summary buckets, balance history, withdrawals
- **ReviewService**: customer reviews, admin publication, cleaner average rating
- **UserService**: caller resolution, cleaner lookup, soft-delete / restore cascade
- **FileService**: payment proof blob storage
- **NotificationService**: change feed delivered after commit
- **AuditService**: audit trail rows written inside the same transaction
"""

from .booking_service import BookingService
from .payment_verification_service import PaymentVerificationService
from .dispatch_service import DispatchService
from .earnings_service import EarningsService
from .review_service import ReviewService
from .user_service import UserService
from .file_service import FileService
from .notification_service import NotificationService, ChangeFeed
from .audit_service import AuditService
from .transaction_helper import TransactionHelper
from .identity import CallerContext

__all__ = [
    'BookingService',
    'PaymentVerificationService',
    'DispatchService',
    'EarningsService',
    'ReviewService',
    'UserService',
    'FileService',
    'NotificationService',
    'ChangeFeed',
    'AuditService',
    'TransactionHelper',
    'CallerContext'
]
