
from decimal import Decimal
from enum import Enum
import uuid
from app import db
from sqlalchemy import Index, CheckConstraint, UniqueConstraint
from timezone_utils import get_ist_time_naive


# Enums for better data integrity
class UserRole(Enum):
    USER = 'user'
    CLEANER = 'cleaner'
    ADMIN = 'admin'


class BookingStatus(Enum):
    PENDING = 'pending'
    PICKED = 'picked'
    IN_PROGRESS = 'in_progress'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    PAYMENT_VERIFIED = 'payment_verified'


class PaymentStatus(Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'


class SoftDeleteMixin:
    """Rows are hidden, never removed."""
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime)


class User(SoftDeleteMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100))
    phone = db.Column(db.String(20))
    address = db.Column(db.String(255))

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.USER, index=True)

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_ist_time_naive, onupdate=get_ist_time_naive)

    cleaner_profile = db.relationship('Cleaner', back_populates='user', uselist=False)

    def __repr__(self):
        return f'<User {self.email}>'


class Service(db.Model):
    """Service catalogue doubling as the cleaner payout rate table."""
    __tablename__ = 'services'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    base_price = db.Column(db.Numeric(10, 2), nullable=False)
    # Null means the configured DEFAULT_CLEANER_PAYOUT applies
    cleaner_payout = db.Column(db.Numeric(10, 2))
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)

    def __repr__(self):
        return f'<Service {self.name}>'


class Cleaner(db.Model):
    __tablename__ = 'cleaners'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False, index=True)

    earnings_balance = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0.00'))

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)

    user = db.relationship('User', back_populates='cleaner_profile')
    earnings_history = db.relationship('CleanerEarning', back_populates='cleaner',
                                       order_by='CleanerEarning.earned_at, CleanerEarning.id')
    withdrawals = db.relationship('Withdrawal', back_populates='cleaner',
                                  order_by='Withdrawal.created_at.desc()')

    __table_args__ = (
        CheckConstraint('earnings_balance >= 0', name='ck_cleaner_balance_non_negative'),
    )

    def __repr__(self):
        return f'<Cleaner {self.id} balance={self.earnings_balance}>'


class Booking(SoftDeleteMixin, db.Model):
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))

    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    cleaner_id = db.Column(db.Integer, db.ForeignKey('cleaners.id'), index=True)
    service_id = db.Column(db.Integer, db.ForeignKey('services.id'), nullable=False)

    status = db.Column(db.Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    address = db.Column(db.String(255))

    # Lifecycle timing
    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    picked_at = db.Column(db.DateTime)
    started_at = db.Column(db.DateTime)
    paused_at = db.Column(db.DateTime)
    total_pause_duration = db.Column(db.Integer, nullable=False, default=0)  # minutes
    completed_at = db.Column(db.DateTime)
    payment_collected_at = db.Column(db.DateTime)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_proof_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_ist_time_naive, onupdate=get_ist_time_naive)

    customer = db.relationship('User', foreign_keys=[customer_id])
    cleaner = db.relationship('Cleaner')
    service = db.relationship('Service')

    __table_args__ = (
        Index('idx_bookings_cleaner_status_active', 'cleaner_id', 'status', 'is_deleted'),
        Index('idx_bookings_payment_active', 'payment_collected_at', 'status', 'is_deleted'),
        CheckConstraint('total_pause_duration >= 0', name='ck_booking_pause_non_negative'),
    )

    def __repr__(self):
        return f'<Booking {self.id} {self.status.value if self.status else None}>'


class CleanerEarning(db.Model):
    """Append-only earnings history entry, one per verified booking."""
    __tablename__ = 'cleaner_earnings'

    id = db.Column(db.Integer, primary_key=True)
    cleaner_id = db.Column(db.Integer, db.ForeignKey('cleaners.id'), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'), nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    service = db.Column(db.String(100))
    earned_at = db.Column(db.DateTime, nullable=False, default=get_ist_time_naive)

    cleaner = db.relationship('Cleaner', back_populates='earnings_history')

    __table_args__ = (
        UniqueConstraint('booking_id', name='uq_cleaner_earnings_booking'),
    )

    def to_dict(self):
        return {
            'booking_id': self.booking_id,
            'amount': float(self.amount),
            'service': self.service,
            'earned_at': self.earned_at.isoformat() if self.earned_at else None,
        }


class Withdrawal(db.Model):
    __tablename__ = 'earnings_withdrawals'

    id = db.Column(db.Integer, primary_key=True)
    cleaner_id = db.Column(db.Integer, db.ForeignKey('cleaners.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=get_ist_time_naive)

    cleaner = db.relationship('Cleaner', back_populates='withdrawals')

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_withdrawal_positive'),
    )

    def __repr__(self):
        return f'<Withdrawal ₹{self.amount} cleaner={self.cleaner_id}>'


class Review(SoftDeleteMixin, db.Model):
    __tablename__ = 'reviews'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'))
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime)

    booking = db.relationship('Booking')

    __table_args__ = (
        CheckConstraint('rating BETWEEN 1 AND 5', name='ck_review_rating_range'),
    )


class Payment(SoftDeleteMixin, db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'))
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    created_at = db.Column(db.DateTime, default=get_ist_time_naive, nullable=False)


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)

    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer)
    new_values = db.Column(db.Text)  # JSON

    created_at = db.Column(db.DateTime, default=get_ist_time_naive, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )
