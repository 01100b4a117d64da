"""Timeline Service - append-only audit trail of production orders.

This service provides:
- Construction of timeline entries for accepted commands
- Ordered timeline projections with per-order metrics
- Replay of a timeline to reconstruct an order's status
- Time-in-status analytics

Session Management Pattern:
- Public read functions accept session=None
- If session provided, use it directly
- If session is None, create a new session via session_scope()
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from src.models import ProductionOrder, ProductionStatus, TimelineEntry, TimelineEventType
from src.services import production_order_repository as repository
from src.services.database import session_scope
from src.services.exceptions import InvalidTransition
from src.services.transition_table import INITIAL_STATUS
from src.services.workflow_engine import TransitionDecision
from src.utils.constants import SYSTEM_ACTOR
from src.utils.datetime_utils import utc_now


def build_entry(
    order: ProductionOrder,
    decision: TransitionDecision,
    event_type: TimelineEventType,
    actor: Optional[str],
    occurred_at: datetime,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> TimelineEntry:
    """
    Build (but do not persist) the timeline entry for an accepted command.

    Must be called before the order's ``last_transition_at`` is moved to
    ``occurred_at``, since the time spent in the prior status is measured
    from it.
    """
    duration = None
    if order.last_transition_at is not None:
        minutes = (occurred_at - order.last_transition_at).total_seconds() / 60
        duration = Decimal(str(round(max(minutes, 0.0), 2)))

    return TimelineEntry(
        order_id=order.id,
        from_status=decision.from_status,
        to_status=decision.to_status,
        command=decision.command.value,
        event_type=event_type,
        actor=actor or SYSTEM_ACTOR,
        reason=reason,
        notes=notes,
        occurred_at=occurred_at,
        created_at=occurred_at,
        updated_at=occurred_at,
        duration_in_minutes=duration,
    )


def replay_status(entries: Iterable[TimelineEntry]) -> ProductionStatus:
    """
    Fold a timeline from PENDING to the status it leads to.

    Entries that do not change status (assignments) are skipped.

    Args:
        entries: Timeline entries in (occurred_at, id) order

    Returns:
        The reconstructed status

    Raises:
        InvalidTransition: If an entry does not start where the previous
            one ended, i.e. the timeline is not a valid chain
    """
    status = INITIAL_STATUS
    for entry in entries:
        if not entry.changes_status:
            continue
        if entry.from_status != status:
            raise InvalidTransition(status, entry.to_status, entry.command)
        status = entry.to_status
    return status


def time_in_status(entries: Iterable[TimelineEntry]) -> Dict[str, float]:
    """
    Sum the minutes spent in each status before leaving it.

    Returns:
        Mapping of status value to minutes
    """
    totals: Dict[str, float] = defaultdict(float)
    for entry in entries:
        if entry.changes_status and entry.duration_in_minutes is not None:
            totals[entry.from_status.value] += float(entry.duration_in_minutes)
    return dict(totals)


def entry_to_dict(entry: TimelineEntry) -> Dict[str, Any]:
    """Convert a timeline entry to its display dictionary."""
    if entry.changes_status:
        description = f"Status changed from {entry.from_status.value} to {entry.to_status.value}"
    else:
        description = entry.reason or entry.event_type.value
    return {
        "id": entry.id,
        "order_id": entry.order_id,
        "from_status": entry.from_status.value,
        "to_status": entry.to_status.value,
        "command": entry.command,
        "event_type": entry.event_type.value,
        "actor": entry.actor,
        "reason": entry.reason,
        "notes": entry.notes,
        "occurred_at": entry.occurred_at.isoformat(),
        "duration_in_minutes": (
            float(entry.duration_in_minutes) if entry.duration_in_minutes is not None else None
        ),
        "description": description,
    }


def _get_timeline_impl(order_id: int, session: Session) -> Dict[str, Any]:
    order = repository.load_order(order_id, session)
    entries = repository.list_timeline(order_id, session)
    now = utc_now()

    duration = order.duration
    if duration is None and order.started_at is not None and not order.is_terminal:
        duration = now - order.started_at

    return {
        "order_id": order_id,
        "entries": [entry_to_dict(entry) for entry in entries],
        "metrics": {
            "total_duration_hours": (
                round(duration.total_seconds() / 3600, 2) if duration is not None else 0.0
            ),
            "is_overdue": order.is_overdue(now),
            "status_change_count": sum(1 for entry in entries if entry.changes_status),
            "current_status": order.status.value,
            "priority": order.priority.value,
            "time_in_status_minutes": time_in_status(entries),
        },
    }


def get_timeline(order_id: int, session: Session = None) -> Dict[str, Any]:
    """
    Get the full ordered timeline of an order with summary metrics.

    Transaction boundary: Read-only operation.

    Args:
        order_id: Order to read
        session: Optional session for transaction sharing

    Returns:
        Dict with order_id, entries (oldest first) and metrics

    Raises:
        OrderNotFound: If the order does not exist
        PersistenceError: If the store cannot be read
    """
    if session is not None:
        return _get_timeline_impl(order_id, session)

    with session_scope() as session:
        return _get_timeline_impl(order_id, session)


def _verify_replay_impl(order_id: int, session: Session) -> bool:
    order = repository.load_order(order_id, session)
    entries = repository.list_timeline(order_id, session)
    try:
        return replay_status(entries) == order.status
    except InvalidTransition:
        return False


def verify_replay(order_id: int, session: Session = None) -> bool:
    """
    Check that replaying an order's timeline yields its stored status.

    Transaction boundary: Read-only operation.

    Returns:
        True if the replayed status equals the stored status

    Raises:
        OrderNotFound: If the order does not exist
    """
    if session is not None:
        return _verify_replay_impl(order_id, session)

    with session_scope() as session:
        return _verify_replay_impl(order_id, session)


def list_entries(order_id: int, session: Session = None) -> List[TimelineEntry]:
    """
    Return raw timeline entries of an order, oldest first.

    Raises:
        OrderNotFound: If the order does not exist
    """
    if session is not None:
        repository.load_order(order_id, session)
        return repository.list_timeline(order_id, session)

    with session_scope() as session:
        repository.load_order(order_id, session)
        return repository.list_timeline(order_id, session)
