"""Data Transfer Objects for the service layer.

This module provides the uniform response envelope returned by every
orchestrator command and query, the filter accepted by the order
repository, and the summary projection used by dashboard lists.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from src.models import ProductionOrder, ProductionStatus
from src.services.exceptions import WorkflowError
from src.utils.datetime_utils import utc_now


@dataclass(frozen=True)
class CommandResult:
    """Uniform response envelope.

    Exactly one of ``data`` (on success) or ``error`` (on failure) is
    meaningful. ``error_kind`` is a stable identifier callers can map to
    transport status codes.

    Attributes:
        success: Whether the command or query succeeded
        data: Payload on success (order dict, list, dashboard dict, ...)
        error: Human-readable message on failure
        error_kind: Stable error kind on failure (e.g. "InvalidTransition")

    Examples:
        >>> CommandResult.ok({"id": 1}).success
        True
        >>> result = CommandResult.failure(OrderNotFound(7))
        >>> (result.error_kind, result.error)
        ('OrderNotFound', 'Production order 7 not found')
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "CommandResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: WorkflowError) -> "CommandResult":
        return cls(success=False, error=error.message, error_kind=error.error_kind)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "error_kind": self.error_kind}


@dataclass(frozen=True)
class OrderFilter:
    """Filter for repository order queries.

    All criteria are optional and combined with AND. The activity window
    matches orders created *or* last transitioned inside [window_from,
    window_to] (both bounds inclusive).

    Attributes:
        statuses: Restrict to these statuses
        assigned_to: Restrict to one assignee
        window_from: Lower bound of the activity window
        window_to: Upper bound of the activity window
        overdue_at: Only orders whose estimated completion is before this time
    """

    statuses: Optional[FrozenSet[ProductionStatus]] = None
    assigned_to: Optional[str] = None
    window_from: Optional[datetime] = None
    window_to: Optional[datetime] = None
    overdue_at: Optional[datetime] = None


@dataclass
class ProductionSummary:
    """Compact view of an order for dashboard lists."""

    order_id: int
    reference: Optional[str]
    quantity: int
    status: str
    priority: str
    assigned_to: Optional[str]
    created_at: Optional[str]
    started_at: Optional[str]
    estimated_completion: Optional[str]
    completed_at: Optional[str]
    last_transition_at: Optional[str]
    is_overdue: bool
    overdue_hours: Optional[float]
    progress_percentage: Optional[int]
    total_value: str
    is_high_priority: bool = field(default=False)

    @classmethod
    def from_order(
        cls, order: ProductionOrder, now: Optional[datetime] = None
    ) -> "ProductionSummary":
        now = now or utc_now()
        overdue_by = order.overdue_by(now)
        return cls(
            order_id=order.id,
            reference=order.reference,
            quantity=order.quantity,
            status=order.status.value,
            priority=order.priority.value,
            assigned_to=order.assigned_to,
            created_at=_iso(order.created_at),
            started_at=_iso(order.started_at),
            estimated_completion=_iso(order.estimated_completion),
            completed_at=_iso(order.completed_at),
            last_transition_at=_iso(order.last_transition_at),
            is_overdue=overdue_by is not None,
            overdue_hours=(
                round(overdue_by.total_seconds() / 3600, 2) if overdue_by is not None else None
            ),
            progress_percentage=order.progress_percentage,
            total_value=str(order.total_value),
            is_high_priority=order.priority.is_high,
        )

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
