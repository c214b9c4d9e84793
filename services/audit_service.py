"""
Audit Service

Writes an audit trail row for every lifecycle transition, ledger credit,
withdrawal and soft-delete. Rows are added to the caller's transaction so the
trail commits or rolls back together with the change it describes.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from models import db, AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_action(action: str,
                   entity_type: Optional[str] = None,
                   entity_id: Optional[int] = None,
                   details: Optional[Dict[str, Any]] = None,
                   user_id: Optional[int] = None) -> AuditLog:
        """
        Record an audit event in the current transaction.

        Args:
            action: Action performed (e.g., 'pick_booking', 'verify_payment')
            entity_type: Type of entity affected (e.g., 'booking', 'cleaner')
            entity_id: ID of the affected entity
            details: Additional details about the action
            user_id: ID of the acting user; None for system actions

        Returns:
            AuditLog: the pending audit row
        """
        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        audit.new_values = json.dumps(details, default=str) if details else None

        # Let outer transaction handle the commit
        db.session.add(audit)
        logger.debug(f"Audit logged: {action} on {entity_type}:{entity_id} by user {user_id}")
        return audit

    @staticmethod
    def get_entity_history(entity_type: str, entity_id: int, limit: int = 50) -> List[AuditLog]:
        """
        Get audit history for a specific entity, newest first.
        """
        return AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id) \
                             .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()) \
                             .limit(limit).all()
