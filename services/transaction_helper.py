"""
Transaction Helper Service

Every state-changing service call runs as one database transaction:
- commit on success, full rollback on any exception
- connection-level failures retried with exponential backoff, then surfaced
  as UpstreamFailure
- callbacks registered with on_commit run only after a successful commit
- callbacks registered with on_rollback undo work done outside the database
  (stored files) whenever the unit is rolled back
"""

from functools import wraps
from typing import Callable
import logging
import time
from flask import current_app
from sqlalchemy.exc import OperationalError, DisconnectionError, SQLAlchemyError
from app import db
from .exceptions import BookingError, UpstreamFailure

logger = logging.getLogger(__name__)

ON_COMMIT_KEY = 'on_commit_callbacks'
ON_ROLLBACK_KEY = 'on_rollback_callbacks'


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    def on_commit(callback: Callable[[], None]) -> None:
        """
        Defer a callback until the surrounding transaction commits.
        Discarded if the transaction rolls back.
        """
        db.session.info.setdefault(ON_COMMIT_KEY, []).append(callback)

    @staticmethod
    def on_rollback(callback: Callable[[], None]) -> None:
        """
        Run a callback if the surrounding transaction rolls back, including
        the rollback before a retry. Dropped once the transaction commits.
        """
        db.session.info.setdefault(ON_ROLLBACK_KEY, []).append(callback)

    @staticmethod
    def _discard_callbacks() -> None:
        db.session.info.pop(ON_COMMIT_KEY, None)
        for callback in db.session.info.pop(ON_ROLLBACK_KEY, []):
            try:
                callback()
            except Exception as e:
                logger.error(f"Rollback callback failed: {str(e)}", exc_info=True)

    @staticmethod
    def _run_callbacks() -> None:
        db.session.info.pop(ON_ROLLBACK_KEY, None)
        callbacks = db.session.info.pop(ON_COMMIT_KEY, [])
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Post-commit work never undoes a committed change
                logger.error(f"After-commit callback failed: {str(e)}", exc_info=True)

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.
        Domain errors roll back and propagate unchanged. Connection errors roll
        back the whole unit and are retried; nothing partial is ever committed.

        Usage:
            @TransactionHelper.with_transaction
            def pick_booking(self, caller, booking_id):
                ...
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_retries = current_app.config.get('DB_MAX_RETRIES', 3)
            backoff = current_app.config.get('DB_RETRY_BACKOFF', 0.5)

            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)
                    db.session.commit()
                except BookingError:
                    db.session.rollback()
                    TransactionHelper._discard_callbacks()
                    raise
                except (OperationalError, DisconnectionError) as e:
                    db.session.rollback()
                    TransactionHelper._discard_callbacks()

                    if attempt < max_retries - 1:
                        sleep_time = backoff * (2 ** attempt)
                        logger.warning(f"Database connection error in {func.__name__} "
                                       f"(attempt {attempt + 1}/{max_retries}): {str(e)}. "
                                       f"Retrying in {sleep_time}s...")
                        time.sleep(sleep_time)
                        continue

                    logger.error(f"Transaction {func.__name__} failed after {max_retries} attempts: {str(e)}")
                    raise UpstreamFailure(f"Database unavailable: {str(e)}") from e
                except SQLAlchemyError as e:
                    db.session.rollback()
                    TransactionHelper._discard_callbacks()
                    logger.error(f"Transaction error in {func.__name__}: {str(e)}")
                    raise UpstreamFailure(f"Database error: {str(e)}") from e
                except Exception:
                    db.session.rollback()
                    TransactionHelper._discard_callbacks()
                    raise

                TransactionHelper._run_callbacks()
                return result
            return None
        return wrapper
