"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across the workflow commands and
dashboard queries.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful command
    log_operation(
        logger,
        operation="start_production",
        outcome="success",
        order_id=123,
        to_status="InProgress",
    )

    # Log rejected command
    log_operation(
        logger,
        operation="put_on_hold",
        outcome="rejected",
        level=logging.WARNING,
        order_id=123,
        error_kind="ValidationError",
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "wip_tracker.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance under the 'wip_tracker.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'wip_tracker.services.production_orchestrator'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is always "<operation>: <outcome>"; the context is passed via
    the 'extra' parameter for structured handlers.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "start_production", "get_wip_dashboard")
        outcome: Outcome description (e.g., "success", "rejected", "error")
        level: Log level (default: INFO)
        **context: Additional context fields. Common fields:
            - order_id: Production order being acted on
            - from_status / to_status: Transition endpoints
            - actor: Who issued the command
            - error_kind: Stable error kind for rejected commands
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
