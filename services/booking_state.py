"""
Booking Status Machine

The lifecycle as an explicit transition table. Each transition names the
statuses it may start from, the status it ends in, who may perform it, the
column values it writes, and the snapshot columns its conditional update must
re-check so that values derived from a read are never written over a newer row.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Tuple, Any
from models import BookingStatus
from timezone_utils import whole_minutes_between


class Actor(Enum):
    CLEANER = 'cleaner'                    # any cleaner, booking unassigned
    ASSIGNED_CLEANER = 'assigned_cleaner'  # only the cleaner holding the booking
    SYSTEM = 'system'


@dataclass(frozen=True)
class Transition:
    name: str
    sources: FrozenSet[BookingStatus]
    target: BookingStatus
    actor: Actor
    effects: Callable[..., Dict[str, Any]]
    snapshot_fields: Tuple[str, ...] = field(default=())

    def allows(self, status: BookingStatus) -> bool:
        return status in self.sources


def _close_pause(booking, now) -> Dict[str, Any]:
    """Fold the open pause interval into total_pause_duration."""
    return {
        'paused_at': None,
        'total_pause_duration': (booking.total_pause_duration or 0) + whole_minutes_between(booking.paused_at, now),
    }


def _pick_effects(booking, now, cleaner_id=None):
    return {'cleaner_id': cleaner_id, 'picked_at': now}


def _start_effects(booking, now, **_):
    return {'started_at': now}


def _pause_effects(booking, now, **_):
    return {'paused_at': now}


def _resume_effects(booking, now, **_):
    return _close_pause(booking, now)


def _complete_effects(booking, now, **_):
    values = {'completed_at': now}
    if booking.status == BookingStatus.PAUSED:
        # Completing while paused closes the pause like a resume would
        values.update(_close_pause(booking, now))
    return values


def _verify_effects(booking, now, **_):
    return {'payment_collected_at': now}


PICK = Transition(
    name='pick',
    sources=frozenset({BookingStatus.PENDING}),
    target=BookingStatus.PICKED,
    actor=Actor.CLEANER,
    effects=_pick_effects,
    snapshot_fields=('cleaner_id',),
)

START = Transition(
    name='start',
    sources=frozenset({BookingStatus.PICKED}),
    target=BookingStatus.IN_PROGRESS,
    actor=Actor.ASSIGNED_CLEANER,
    effects=_start_effects,
    snapshot_fields=('started_at',),
)

PAUSE = Transition(
    name='pause',
    sources=frozenset({BookingStatus.IN_PROGRESS}),
    target=BookingStatus.PAUSED,
    actor=Actor.ASSIGNED_CLEANER,
    effects=_pause_effects,
    snapshot_fields=('paused_at',),
)

RESUME = Transition(
    name='resume',
    sources=frozenset({BookingStatus.PAUSED}),
    target=BookingStatus.IN_PROGRESS,
    actor=Actor.ASSIGNED_CLEANER,
    effects=_resume_effects,
    snapshot_fields=('paused_at', 'total_pause_duration'),
)

COMPLETE = Transition(
    name='complete',
    sources=frozenset({BookingStatus.IN_PROGRESS, BookingStatus.PAUSED}),
    target=BookingStatus.COMPLETED,
    actor=Actor.ASSIGNED_CLEANER,
    effects=_complete_effects,
    snapshot_fields=('paused_at', 'total_pause_duration', 'completed_at'),
)

VERIFY_PAYMENT = Transition(
    name='verify_payment',
    sources=frozenset({BookingStatus.COMPLETED}),
    target=BookingStatus.PAYMENT_VERIFIED,
    actor=Actor.SYSTEM,
    effects=_verify_effects,
    snapshot_fields=('payment_collected_at',),
)

TRANSITIONS: Dict[str, Transition] = {
    t.name: t for t in (PICK, START, PAUSE, RESUME, COMPLETE, VERIFY_PAYMENT)
}

INITIAL_STATUS = BookingStatus.PENDING
TERMINAL_STATUSES = frozenset({BookingStatus.PAYMENT_VERIFIED})


def allowed_targets(status: BookingStatus) -> FrozenSet[BookingStatus]:
    """Statuses reachable from `status` in one step."""
    return frozenset(t.target for t in TRANSITIONS.values() if t.allows(status))


def check_invariants(booking) -> list:
    """
    Return the field-presence invariants a booking row violates (empty if none).
    """
    problems = []
    status = booking.status

    if not isinstance(status, BookingStatus):
        problems.append(f"unknown status {status!r}")
        return problems

    if (booking.paused_at is not None) != (status == BookingStatus.PAUSED):
        problems.append("paused_at must be set exactly when status is paused")

    if (booking.total_pause_duration or 0) < 0:
        problems.append("total_pause_duration must not be negative")

    assigned = status != BookingStatus.PENDING
    if assigned and (booking.cleaner_id is None or booking.picked_at is None):
        problems.append("picked bookings must carry cleaner_id and picked_at")
    if not assigned and booking.cleaner_id is not None:
        problems.append("pending bookings must be unassigned")

    started = status in (BookingStatus.IN_PROGRESS, BookingStatus.PAUSED,
                         BookingStatus.COMPLETED, BookingStatus.PAYMENT_VERIFIED)
    if started != (booking.started_at is not None):
        problems.append("started_at must be set exactly once work has started")

    finished = status in (BookingStatus.COMPLETED, BookingStatus.PAYMENT_VERIFIED)
    if finished != (booking.completed_at is not None):
        problems.append("completed_at must be set exactly once the job is completed")

    verified = status == BookingStatus.PAYMENT_VERIFIED
    if verified != (booking.payment_collected_at is not None):
        problems.append("payment_collected_at must be set exactly when payment is verified")
    if (booking.payment_proof_url is None) != (booking.payment_collected_at is None):
        problems.append("payment_proof_url and payment_collected_at must be set together")

    return problems
