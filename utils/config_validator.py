"""
Application configuration validation
Ensures required settings are present and sane before the app starts serving
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Tuple, Any

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def validate_security_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate secrets used for sessions and JWT signing.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    session_secret = config.get('SESSION_SECRET')
    if not session_secret:
        issues.append("Missing SESSION_SECRET environment variable")

    if not config.get('JWT_SECRET_KEY'):
        issues.append("Missing JWT_SECRET_KEY (falls back to SESSION_SECRET)")

    return len(issues) == 0, issues


def validate_ledger_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate payout and reporting settings used by the earnings ledger.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    try:
        payout = Decimal(str(config.get('DEFAULT_CLEANER_PAYOUT')))
        if payout < 0:
            issues.append("DEFAULT_CLEANER_PAYOUT must not be negative")
    except (InvalidOperation, TypeError):
        issues.append("DEFAULT_CLEANER_PAYOUT must be a decimal amount")

    week_start = config.get('WEEK_START_DAY')
    if not isinstance(week_start, int) or not 0 <= week_start <= 6:
        issues.append("WEEK_START_DAY must be an integer between 0 (Monday) and 6 (Sunday)")

    if config.get('DB_MAX_RETRIES', 1) < 1:
        issues.append("DB_MAX_RETRIES must be at least 1")

    return len(issues) == 0, issues


def validate_app_config(config: Dict[str, Any]) -> None:
    """
    Validate the full application configuration.

    Raises:
        ConfigValidationError: if any critical setting is missing or invalid
    """
    security_valid, security_issues = validate_security_config(config)
    ledger_valid, ledger_issues = validate_ledger_config(config)

    all_issues = security_issues + ledger_issues
    if all_issues:
        for issue in all_issues:
            logger.error(f"CONFIG: Issue - {issue}")
        raise ConfigValidationError("; ".join(all_issues))

    logger.debug("CONFIG: validation passed")
