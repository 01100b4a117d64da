"""
Dashboard Service - read-only WIP summaries.

This service provides:
- WIP dashboard data (per-status counts, value and performance metrics,
  overdue and recent orders)
- Active and overdue order lists
- Per-employee workload
- Historical averages used for completion estimates

Nothing here changes an order. Reads take no locks and tolerate snapshots
that are slightly stale relative to concurrent commands.
"""

from collections import Counter, defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import ProductionOrder, ProductionStatus
from src.services import production_order_repository as repository
from src.services.database import session_scope
from src.services.dto import OrderFilter, ProductionSummary
from src.services.logging_utils import get_service_logger, log_operation
from src.services.transition_table import ACTIVE_STATUSES
from src.utils.config import get_config
from src.utils.datetime_utils import ensure_utc, utc_now

logger = get_service_logger(__name__)


def _summaries(orders: List[ProductionOrder], now: datetime) -> List[Dict[str, Any]]:
    return [ProductionSummary.from_order(order, now).to_dict() for order in orders]


def _percentage(part: int, whole: int, default: float) -> float:
    if whole == 0:
        return default
    return round(part / whole * 100, 2)


def _average_completion_hours(completed: List[ProductionOrder]) -> float:
    durations = [o.duration.total_seconds() / 3600 for o in completed if o.duration is not None]
    if not durations:
        return 0.0
    return round(sum(durations) / len(durations), 2)


def _on_time_rate(completed: List[ProductionOrder]) -> float:
    """Share of completed orders finished by their estimate (100 with no data)."""
    with_estimates = [
        o for o in completed if o.completed_at is not None and o.estimated_completion is not None
    ]
    on_time = sum(1 for o in with_estimates if o.completed_at <= o.estimated_completion)
    return _percentage(on_time, len(with_estimates), 100.0)


def _quality_pass_rate(orders: List[ProductionOrder]) -> float:
    checked = [o for o in orders if o.quality_check_passed is not None]
    passed = sum(1 for o in checked if o.quality_check_passed)
    return _percentage(passed, len(checked), 100.0)


def _workload(orders: List[ProductionOrder], now: datetime) -> Dict[str, Dict[str, int]]:
    workload: Dict[str, Dict[str, int]] = defaultdict(lambda: {"active": 0, "overdue": 0})
    for order in orders:
        if order.is_terminal or not order.assigned_to:
            continue
        workload[order.assigned_to]["active"] += 1
        if order.is_overdue(now):
            workload[order.assigned_to]["overdue"] += 1
    return dict(workload)


def _get_wip_dashboard_impl(
    session: Session,
    from_date: Optional[datetime],
    to_date: Optional[datetime],
    assigned_to: Optional[str],
) -> Dict[str, Any]:
    config = get_config()
    now = utc_now()
    today = now.date()

    orders = repository.query_orders(
        OrderFilter(assigned_to=assigned_to, window_from=from_date, window_to=to_date),
        session,
    )
    active = [o for o in orders if not o.is_terminal]
    completed = [o for o in orders if o.status == ProductionStatus.COMPLETED]
    # Earliest estimate first == most overdue first
    overdue = sorted(
        (o for o in active if o.is_overdue(now)),
        key=lambda o: (o.estimated_completion, o.id),
    )
    completed_today = [
        o for o in completed if o.completed_at is not None and o.completed_at.date() == today
    ]

    status_counts = Counter(o.status.value for o in orders)
    total_value = sum((o.total_value for o in active), Decimal("0"))
    workload = _workload(active, now)

    orders_by_status: Dict[str, List[Dict[str, Any]]] = {}
    for order in active:
        orders_by_status.setdefault(order.status.value, []).append(
            ProductionSummary.from_order(order, now).to_dict()
        )

    recent = sorted(orders, key=lambda o: (o.last_transition_at, o.id), reverse=True)
    recent = recent[: config.recent_orders_limit]

    return {
        "statistics": {
            "total_active": len(active),
            "status_counts": {
                status.value: status_counts.get(status.value, 0) for status in ProductionStatus
            },
            "overdue_count": len(overdue),
            "completed_today_count": len(completed_today),
            "average_completion_hours": _average_completion_hours(completed),
            "on_time_completion_rate": _on_time_rate(completed),
            "quality_pass_rate": _quality_pass_rate(orders),
            "total_value_in_progress": str(total_value),
            "average_order_value": (
                str((total_value / len(active)).quantize(Decimal("0.01")))
                if active
                else "0.00"
            ),
            "unassigned_count": sum(1 for o in active if not o.assigned_to),
            "workload_by_employee": {
                employee: counts["active"] for employee, counts in sorted(workload.items())
            },
        },
        "orders_by_status": orders_by_status,
        "overdue_orders": _summaries(overdue, now),
        "completed_today": _summaries(completed_today, now),
        "recent_orders": _summaries(recent, now),
        "last_updated": now.isoformat(),
    }


def get_wip_dashboard(
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    assigned_to: Optional[str] = None,
    session: Session = None,
) -> Dict[str, Any]:
    """
    Get WIP dashboard data.

    Orders are included when they were created or last transitioned inside
    [from_date, to_date] and, if given, are assigned to ``assigned_to``.

    Args:
        from_date: Optional lower bound of the activity window
        to_date: Optional upper bound of the activity window
        assigned_to: Optional assignee filter
        session: Optional session for transaction sharing

    Returns:
        Dict with statistics, orders_by_status (active only), overdue_orders
        (most overdue first), completed_today, recent_orders (bounded by
        config.recent_orders_limit, latest activity first) and last_updated

    Raises:
        PersistenceError: If the store cannot be read
    """
    from_date = ensure_utc(from_date)
    to_date = ensure_utc(to_date)

    if session is not None:
        result = _get_wip_dashboard_impl(session, from_date, to_date, assigned_to)
    else:
        with session_scope() as session:
            result = _get_wip_dashboard_impl(session, from_date, to_date, assigned_to)

    log_operation(
        logger,
        operation="get_wip_dashboard",
        outcome="success",
        total_active=result["statistics"]["total_active"],
    )
    return result


def _get_active_productions_impl(
    session: Session,
    assigned_to: Optional[str],
    status: Optional[ProductionStatus],
) -> List[Dict[str, Any]]:
    statuses = ACTIVE_STATUSES
    if status is not None:
        statuses = frozenset({status}) & ACTIVE_STATUSES
    if not statuses:
        return []
    orders = repository.query_orders(
        OrderFilter(statuses=statuses, assigned_to=assigned_to), session
    )
    return _summaries(orders, utc_now())


def get_active_productions(
    assigned_to: Optional[str] = None,
    status: Optional[ProductionStatus] = None,
    session: Session = None,
) -> List[Dict[str, Any]]:
    """
    Get orders in any non-terminal status.

    Args:
        assigned_to: Optional assignee filter
        status: Optional status filter; a terminal status yields an empty list
        session: Optional session for transaction sharing

    Returns:
        List of order summaries ordered by order ID
    """
    if status is not None:
        status = ProductionStatus(status)

    if session is not None:
        return _get_active_productions_impl(session, assigned_to, status)

    with session_scope() as session:
        return _get_active_productions_impl(session, assigned_to, status)


def _get_overdue_productions_impl(session: Session) -> List[Dict[str, Any]]:
    now = utc_now()
    orders = repository.query_orders(
        OrderFilter(statuses=ACTIVE_STATUSES, overdue_at=now), session
    )
    # Earliest estimate first == most overdue first
    orders.sort(key=lambda o: (o.estimated_completion, o.id))
    return _summaries(orders, now)


def get_overdue_productions(session: Session = None) -> List[Dict[str, Any]]:
    """
    Get active orders whose estimated completion has passed.

    Returns:
        List of order summaries, most overdue first
    """
    if session is not None:
        return _get_overdue_productions_impl(session)

    with session_scope() as session:
        return _get_overdue_productions_impl(session)


def _get_employee_workload_impl(
    session: Session, include_overdue: bool
) -> List[Dict[str, Any]]:
    orders = repository.query_orders(OrderFilter(statuses=ACTIVE_STATUSES), session)
    workload = _workload(orders, utc_now())
    result = []
    for employee in sorted(workload):
        row: Dict[str, Any] = {
            "employee": employee,
            "active_count": workload[employee]["active"],
        }
        if include_overdue:
            row["overdue_count"] = workload[employee]["overdue"]
        result.append(row)
    return result


def get_employee_workload(
    include_overdue: bool = False, session: Session = None
) -> List[Dict[str, Any]]:
    """
    Group active, assigned orders by assignee.

    Args:
        include_overdue: Also report how many of each employee's orders are overdue
        session: Optional session for transaction sharing

    Returns:
        List of {"employee", "active_count"[, "overdue_count"]} sorted by employee
    """
    if session is not None:
        return _get_employee_workload_impl(session, include_overdue)

    with session_scope() as session:
        return _get_employee_workload_impl(session, include_overdue)


def get_active_count_for(employee: str, session: Session) -> int:
    """Number of active orders currently assigned to ``employee``."""
    orders = repository.query_orders(
        OrderFilter(statuses=ACTIVE_STATUSES, assigned_to=employee), session
    )
    return len(orders)


def get_historical_hours_per_unit(session: Session) -> Optional[float]:
    """
    Average hours per unit over completed orders.

    Returns:
        Average of (duration hours / quantity), or None without history
    """
    completed = repository.query_orders(
        OrderFilter(statuses=frozenset({ProductionStatus.COMPLETED})), session
    )
    rates = [
        o.duration.total_seconds() / 3600 / o.quantity
        for o in completed
        if o.duration is not None and o.quantity
    ]
    if not rates:
        return None
    return sum(rates) / len(rates)
