"""Service layer exception classes for WIP Tracker.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Every workflow error carries a stable ``error_kind`` string. The production
orchestrator converts these exceptions into failure envelopes, so callers
only ever see the kind and a human-readable message.

Exception Hierarchy:
    ServiceError (base)
    └── WorkflowError
        ├── OrderNotFound
        ├── InvalidTransition
        ├── NoOpTransition
        ├── OrderClosed
        ├── ValidationError
        ├── ConcurrencyConflict
        └── PersistenceError
"""

from typing import Iterable, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class WorkflowError(ServiceError):
    """Base exception for errors raised while handling workflow commands."""

    error_kind = "WorkflowError"

    @property
    def message(self) -> str:
        return str(self)


class OrderNotFound(WorkflowError):
    """Raised when a production order cannot be found by ID.

    Example:
        >>> raise OrderNotFound(42)
        OrderNotFound: Production order 42 not found
    """

    error_kind = "OrderNotFound"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Production order {order_id} not found")


class InvalidTransition(WorkflowError):
    """Raised when a requested transition is not in the transition table.

    Args:
        current: Current status value
        requested: Requested status value (None if not applicable)
        command: Name of the command that requested it
    """

    error_kind = "InvalidTransition"

    def __init__(self, current, requested=None, command: Optional[str] = None):
        self.current = current
        self.requested = requested
        self.command = command
        current_label = getattr(current, "value", current)
        if requested is None:
            detail = f"{command} is not allowed from {current_label}"
        else:
            requested_label = getattr(requested, "value", requested)
            detail = f"Invalid transition from {current_label} to {requested_label}"
            if command:
                detail += f" via {command}"
        super().__init__(detail)


class NoOpTransition(WorkflowError):
    """Raised when the requested state equals the current state.

    Callers can treat this as a duplicate command and ignore it.
    """

    error_kind = "NoOpTransition"

    def __init__(self, status):
        self.status = status
        super().__init__(f"Production order is already {getattr(status, 'value', status)}")


class OrderClosed(WorkflowError):
    """Raised when a command targets a COMPLETED or CANCELLED order."""

    error_kind = "OrderClosed"

    def __init__(self, status, command: Optional[str] = None):
        self.status = status
        self.command = command
        label = getattr(status, "value", status)
        action = f"{command} is not allowed: " if command else ""
        super().__init__(f"{action}production order is closed ({label})")


class ValidationError(WorkflowError):
    """Raised when data validation fails (e.g. missing hold reason)."""

    error_kind = "ValidationError"

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class ConcurrencyConflict(WorkflowError):
    """Raised when the stored order changed since it was read.

    The caller may re-read the order and re-issue the command.
    """

    error_kind = "ConcurrencyConflict"

    def __init__(
        self,
        order_id: int,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if expected_version is not None and actual_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        else:
            detail = ""
        super().__init__(
            f"Production order {order_id} was modified by another request{detail}; "
            f"reload and retry"
        )


class PersistenceError(WorkflowError):
    """Raised when the store is unavailable or a persistence call times out.

    The original exception is kept on ``original_error`` for logging but
    is never part of the message.
    """

    error_kind = "PersistenceError"

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Persistence error: {message}")
