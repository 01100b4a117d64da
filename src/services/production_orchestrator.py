"""Production Orchestrator - command and query entry points of the WIP core.

Every command follows the same skeleton inside one session_scope():

    1. Load the order (OrderNotFound)
    2. Ask the workflow engine to authorize the request
    3. Build the timeline entry for the decision
    4. Apply the decision's side effects to the order
    5. Save the order against the caller's expected version
    6. Append the timeline entry

The order update and its timeline entry are committed together or not at
all. Domain notifications (status changed, assignment changed, quality check
failed) are logged only after the commit succeeds.

Commands never raise. They return a CommandResult: success with the updated
order, or failure with a stable error kind and a message. Nothing is retried
here; after a ConcurrencyConflict the caller re-reads and re-issues.

Queries return the same envelope around the read-only projections of
src.services.timeline_service and src.services.dashboard_service.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.models import (
    Priority,
    ProductionOrder,
    ProductionStatus,
    TimelineEventType,
    WorkflowCommand,
)
from src.services import dashboard_service
from src.services import production_order_repository as repository
from src.services import timeline_service
from src.services import workflow_engine
from src.services.database import session_scope
from src.services.dto import CommandResult
from src.services.exceptions import (
    ConcurrencyConflict,
    PersistenceError,
    ValidationError,
    WorkflowError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.services.workflow_engine import SideEffect, TransitionDecision, TransitionRequest
from src.utils.config import get_config
from src.utils.constants import (
    EQUIPMENT_ISSUE_PREFIX,
    MATERIAL_SHORTAGE_PREFIX,
    SYSTEM_ACTOR,
)
from src.utils.datetime_utils import ensure_utc, utc_now

logger = get_service_logger(__name__)


@dataclass
class _Notification:
    """A log record to emit once the command's transaction has committed."""

    operation: str
    outcome: str
    level: int = logging.INFO
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _CommandOutcome:
    order: Dict[str, Any]
    context: Dict[str, Any] = field(default_factory=dict)
    notifications: List[_Notification] = field(default_factory=list)


# =============================================================================
# Command plumbing
# =============================================================================


def _execute(
    operation: str,
    order_id: Optional[int],
    work: Callable[[Session], _CommandOutcome],
    actor: Optional[str],
) -> CommandResult:
    """Run ``work`` in its own transaction and wrap the outcome in an envelope."""
    try:
        with session_scope() as session:
            outcome = work(session)
    except StaleDataError:
        # Raised at commit when another writer bumped the version first
        return _reject(operation, ConcurrencyConflict(order_id), order_id, actor)
    except WorkflowError as e:
        return _reject(operation, e, order_id, actor)
    except SQLAlchemyError as e:
        return _reject(operation, PersistenceError(f"{operation} failed", e), order_id, actor)

    log_operation(
        logger,
        operation=operation,
        outcome="success",
        order_id=outcome.order.get("id"),
        actor=actor or SYSTEM_ACTOR,
        version=outcome.order.get("version"),
        **outcome.context,
    )
    for note in outcome.notifications:
        log_operation(logger, note.operation, note.outcome, level=note.level, **note.context)
    return CommandResult.ok(outcome.order)


def _reject(
    operation: str, error: WorkflowError, order_id: Optional[int], actor: Optional[str]
) -> CommandResult:
    level = logging.ERROR if isinstance(error, PersistenceError) else logging.WARNING
    context = {}
    if isinstance(error, PersistenceError) and error.original_error is not None:
        context["cause"] = type(error.original_error).__name__
    log_operation(
        logger,
        operation=operation,
        outcome="rejected" if level == logging.WARNING else "error",
        level=level,
        order_id=order_id,
        actor=actor or SYSTEM_ACTOR,
        error_kind=error.error_kind,
        error=error.message,
        **context,
    )
    return CommandResult.failure(error)


def _check_version(order: ProductionOrder, expected_version: Optional[int]) -> None:
    """Refuse a command based on a stale read before anything is changed."""
    if expected_version is not None and order.version != expected_version:
        raise ConcurrencyConflict(order.id, expected_version, order.version)


def _event_type_for(decision: TransitionDecision, passed: Optional[bool]) -> TimelineEventType:
    if decision.command == WorkflowCommand.ASSIGN:
        return TimelineEventType.ASSIGNMENT_CHANGED
    if decision.command == WorkflowCommand.COMPLETE_QUALITY_CHECK:
        if passed:
            return TimelineEventType.QUALITY_CHECK_COMPLETED
        return TimelineEventType.QUALITY_CHECK_FAILED
    return TimelineEventType.STATUS_CHANGED


def _apply_decision(
    order: ProductionOrder,
    decision: TransitionDecision,
    request: TransitionRequest,
    actor: str,
    now: datetime,
    notes: Optional[str] = None,
    checker_id: Optional[str] = None,
) -> None:
    """Carry out the side effects of an authorized decision on ``order``."""
    effects = decision.side_effects

    if SideEffect.MARK_STARTED in effects and order.started_at is None:
        order.started_at = now
    if SideEffect.SET_HOLD_REASON in effects:
        order.hold_reason = request.reason.strip()
    if SideEffect.CLEAR_HOLD_REASON in effects:
        order.hold_reason = None
    if SideEffect.RECORD_QUALITY_CHECK in effects:
        order.quality_check_passed = bool(request.passed)
        order.quality_check_notes = notes
        order.quality_checker_id = checker_id or actor
        order.quality_check_at = now
    if SideEffect.MARK_COMPLETED in effects:
        order.completed_at = now
    if SideEffect.SET_ASSIGNEE in effects:
        order.assigned_to = request.assigned_to.strip()
        order.assigned_by = actor
    if SideEffect.CLEAR_ASSIGNEE in effects:
        order.assigned_to = None
        order.assigned_by = None

    if decision.changes_status:
        order.previous_status = decision.from_status
        order.status = decision.to_status
        order.last_transition_at = now
    if notes and decision.command != WorkflowCommand.COMPLETE_QUALITY_CHECK:
        order.notes = notes

    order.last_modified_by = actor
    # Always dirty the row so every accepted command bumps the version
    order.updated_at = now


def _workload_notification(
    order: ProductionOrder, assignee: str, session: Session
) -> Optional[_Notification]:
    """Warn when ``assignee`` already carries the configured number of active orders."""
    threshold = get_config().workload_warning_threshold
    active = dashboard_service.get_active_count_for(assignee, session)
    if order.assigned_to == assignee and not order.is_terminal:
        active -= 1
    if active < threshold:
        return None
    return _Notification(
        operation="workload_threshold_exceeded",
        outcome="warning",
        level=logging.WARNING,
        context={
            "order_id": order.id,
            "assigned_to": assignee,
            "active_count": active,
            "threshold": threshold,
        },
    )


def _transition(
    session: Session,
    order_id: int,
    request: TransitionRequest,
    actor: Optional[str],
    expected_version: Optional[int],
    notes: Optional[str] = None,
    checker_id: Optional[str] = None,
    prepare: Optional[Callable[[ProductionOrder, Session], List[_Notification]]] = None,
) -> _CommandOutcome:
    """
    Shared body of every workflow command.

    Transaction boundary: Inherits session from caller (_execute).

    Args:
        prepare: Optional hook run after authorization and before the
            decision is applied; returns extra notifications to log
    """
    actor = actor or SYSTEM_ACTOR
    order = repository.load_order(order_id, session)
    _check_version(order, expected_version)

    decision = workflow_engine.authorize(order.status, request)
    version = order.version
    previous_assignee = order.assigned_to

    notifications = prepare(order, session) if prepare is not None else []

    now = utc_now()
    entry = timeline_service.build_entry(
        order,
        decision,
        _event_type_for(decision, request.passed),
        actor,
        now,
        reason=request.reason.strip() if request.reason else None,
        notes=notes,
    )
    _apply_decision(order, decision, request, actor, now, notes=notes, checker_id=checker_id)

    repository.save_order(order, version, session)
    repository.append_timeline_entry(entry, session)

    if decision.changes_status:
        notifications.append(
            _Notification(
                "status_changed",
                "notified",
                context={
                    "order_id": order.id,
                    "from_status": decision.from_status.value,
                    "to_status": decision.to_status.value,
                    "actor": actor,
                },
            )
        )
    if order.assigned_to != previous_assignee:
        notifications.append(
            _Notification(
                "assignment_changed",
                "notified",
                context={
                    "order_id": order.id,
                    "assigned_to": order.assigned_to,
                    "previous_assignee": previous_assignee,
                    "actor": actor,
                },
            )
        )
    if (
        decision.command == WorkflowCommand.COMPLETE_QUALITY_CHECK
        and request.passed is False
    ):
        notifications.append(
            _Notification(
                "quality_check_failed",
                "notified",
                level=logging.WARNING,
                context={
                    "order_id": order.id,
                    "checker_id": order.quality_checker_id,
                    "notes": notes,
                },
            )
        )

    return _CommandOutcome(
        order=order.to_dict(now),
        context={
            "from_status": decision.from_status.value,
            "to_status": decision.to_status.value,
        },
        notifications=notifications,
    )


def _parse_status(value: Any) -> ProductionStatus:
    try:
        return ProductionStatus(value)
    except ValueError:
        raise ValidationError([f"Unknown production status: {value}"])


def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """Accept a datetime or an ISO-8601 string; anything else is a ValidationError."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError([f"{field_name} is not an ISO-8601 timestamp: {value}"])
    if not isinstance(value, datetime):
        raise ValidationError([f"{field_name} must be a datetime"])
    return ensure_utc(value)


# =============================================================================
# Commands
# =============================================================================


def create_production_order(
    quantity: int = 1,
    priority: Priority = Priority.NORMAL,
    estimated_completion: Optional[datetime] = None,
    unit_value: Any = Decimal("0.00"),
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    actor: Optional[str] = None,
) -> CommandResult:
    """
    Create a new production order in PENDING.

    No timeline entry is written; the timeline starts with the first
    accepted command.

    Args:
        quantity: Units to produce (must be > 0)
        priority: Scheduling priority
        estimated_completion: Optional target completion time
        unit_value: Value per unit (must be >= 0)
        reference: Optional free-text reference
        notes: Optional notes
        actor: Who is creating the order

    Returns:
        CommandResult with the new order dict (version 1)
    """

    def work(session: Session) -> _CommandOutcome:
        errors = []
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            errors.append("Quantity must be a positive whole number")
        try:
            value = Decimal(str(unit_value))
        except InvalidOperation:
            value = None
        if value is None or not value.is_finite() or value < 0:
            errors.append("Unit value must be zero or greater")
        try:
            order_priority = Priority(priority)
        except ValueError:
            order_priority = None
            errors.append(f"Unknown priority: {priority}")
        try:
            due = _parse_datetime(estimated_completion, "estimated_completion")
        except ValidationError as e:
            due = None
            errors.extend(e.errors)
        if errors:
            raise ValidationError(errors)

        order = repository.create_order(
            session,
            quantity=quantity,
            priority=order_priority,
            reference=reference,
            unit_value=value,
            estimated_completion=due,
            notes=notes,
            created_by=actor or SYSTEM_ACTOR,
        )
        return _CommandOutcome(order=order.to_dict())

    return _execute("create_production_order", None, work, actor)


def start_production(
    order_id: int,
    assigned_to: Optional[str] = None,
    estimated_completion: Optional[datetime] = None,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """
    Start a PENDING order.

    Without ``estimated_completion`` and with none stored, the completion is
    estimated as now + quantity * historical hours per unit (falling back to
    config.default_hours_per_unit).

    Args:
        order_id: Order to start
        assigned_to: Optional worker to assign in the same step
        estimated_completion: Optional target completion time
        actor: Who issued the command
        expected_version: Version the caller read, if it wants a stale check

    Returns:
        CommandResult with the updated order, or a failure with
        OrderNotFound / InvalidTransition (not PENDING) / ConcurrencyConflict
    """
    try:
        due = _parse_datetime(estimated_completion, "estimated_completion")
    except ValidationError as e:
        return _reject("start_production", e, order_id, actor)

    request = TransitionRequest(WorkflowCommand.START, assigned_to=assigned_to)

    def prepare(order: ProductionOrder, session: Session) -> List[_Notification]:
        # Queries run before the order is touched so autoflush cannot bump
        # its version ahead of save_order()
        notifications = []
        if assigned_to and assigned_to.strip():
            note = _workload_notification(order, assigned_to.strip(), session)
            if note is not None:
                notifications.append(note)
        if due is not None:
            order.estimated_completion = due
        elif order.estimated_completion is None:
            order.estimated_completion = _estimate_completion(order, session)
        return notifications

    return _execute(
        "start_production",
        order_id,
        lambda session: _transition(
            session, order_id, request, actor, expected_version, prepare=prepare
        ),
        actor,
    )


def _estimate_completion(order: ProductionOrder, session: Session) -> datetime:
    hours_per_unit = dashboard_service.get_historical_hours_per_unit(session)
    if hours_per_unit is None:
        hours_per_unit = get_config().default_hours_per_unit
    return utc_now() + timedelta(hours=order.quantity * hours_per_unit)


def assign_production(
    order_id: int,
    assigned_to: str,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """
    Assign an order to a worker without changing its status.

    Appends an AssignmentChanged timeline entry. A worker already at the
    configured workload threshold triggers a warning, not a rejection.

    Returns:
        CommandResult with the updated order, or a failure with
        OrderNotFound / OrderClosed / ValidationError (empty assignee)
    """
    request = TransitionRequest(WorkflowCommand.ASSIGN, assigned_to=assigned_to)

    def prepare(order: ProductionOrder, session: Session) -> List[_Notification]:
        note = _workload_notification(order, assigned_to.strip(), session)
        return [note] if note is not None else []

    return _execute(
        "assign_production",
        order_id,
        lambda session: _transition(
            session, order_id, request, actor, expected_version, prepare=prepare
        ),
        actor,
    )


def update_production_status(
    order_id: int,
    new_status: ProductionStatus,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """
    Generic transition entry point, validated against the transition table.

    A reason is required when moving to ON_HOLD or CANCELLED. COMPLETED and
    REWORK can only be reached through complete_quality_check().
    Moving PENDING to IN_PROGRESS here skips the completion estimate and
    workload warning, which only start_production() performs.

    Returns:
        CommandResult with the updated order, or a failure with any
        workflow error kind
    """

    def work(session: Session) -> _CommandOutcome:
        request = TransitionRequest(
            WorkflowCommand.UPDATE_STATUS,
            target_status=_parse_status(new_status),
            reason=reason,
        )
        return _transition(session, order_id, request, actor, expected_version, notes=notes)

    return _execute("update_production_status", order_id, work, actor)


def complete_quality_check(
    order_id: int,
    passed: bool,
    notes: Optional[str] = None,
    checker_id: Optional[str] = None,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """
    Record a quality check and move the order to COMPLETED or REWORK.

    Args:
        order_id: Order in QUALITY_CHECK_PENDING
        passed: Check outcome
        notes: Optional check notes
        checker_id: Checker identifier (defaults to the actor)
        actor: Who issued the command
        expected_version: Version the caller read, if it wants a stale check

    Returns:
        CommandResult with the updated order; InvalidTransition if the order
        is in any other status (the stored check result is left untouched)
    """
    request = TransitionRequest(WorkflowCommand.COMPLETE_QUALITY_CHECK, passed=passed)
    return _execute(
        "complete_quality_check",
        order_id,
        lambda session: _transition(
            session,
            order_id,
            request,
            actor,
            expected_version,
            notes=notes,
            checker_id=checker_id,
        ),
        actor,
    )


def put_on_hold(
    order_id: int,
    reason: str,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """Suspend an IN_PROGRESS order; ``reason`` is required and stored as hold_reason."""
    request = TransitionRequest(WorkflowCommand.PUT_ON_HOLD, reason=reason)
    return _execute(
        "put_on_hold",
        order_id,
        lambda session: _transition(session, order_id, request, actor, expected_version),
        actor,
    )


def resume_from_hold(
    order_id: int,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """Return an ON_HOLD order to IN_PROGRESS and clear its hold reason."""
    request = TransitionRequest(WorkflowCommand.RESUME_FROM_HOLD)
    return _execute(
        "resume_from_hold",
        order_id,
        lambda session: _transition(session, order_id, request, actor, expected_version),
        actor,
    )


def cancel_production(
    order_id: int,
    reason: str,
    actor: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CommandResult:
    """
    Cancel an order from any non-terminal status.

    The assignee is cleared. Fails with OrderClosed if the order is already
    COMPLETED or CANCELLED, and with ValidationError without a reason.
    """
    request = TransitionRequest(WorkflowCommand.CANCEL, reason=reason)
    return _execute(
        "cancel_production",
        order_id,
        lambda session: _transition(session, order_id, request, actor, expected_version),
        actor,
    )


def handle_material_shortage(
    order_id: int, reason: str, actor: Optional[str] = None
) -> CommandResult:
    """Put an order on hold for a material shortage."""
    return put_on_hold(order_id, _prefixed(MATERIAL_SHORTAGE_PREFIX, reason), actor)


def handle_equipment_issue(
    order_id: int, reason: str, actor: Optional[str] = None
) -> CommandResult:
    """Put an order on hold for an equipment issue."""
    return put_on_hold(order_id, _prefixed(EQUIPMENT_ISSUE_PREFIX, reason), actor)


def _prefixed(prefix: str, reason: Optional[str]) -> Optional[str]:
    # An empty reason stays empty so the hold guard still rejects it
    if reason is None or not reason.strip():
        return reason
    return f"{prefix}{reason.strip()}"


# =============================================================================
# Queries
# =============================================================================


def _query(operation: str, read: Callable[[], Any], **context: Any) -> CommandResult:
    try:
        data = read()
    except WorkflowError as e:
        return _reject(operation, e, context.get("order_id"), None)
    except SQLAlchemyError as e:
        return _reject(
            operation, PersistenceError(f"{operation} failed", e), context.get("order_id"), None
        )
    return CommandResult.ok(data)


def _ordered_statuses(statuses) -> List[str]:
    return [status.value for status in ProductionStatus if status in statuses]


def _get_production_workflow_impl(order_id: int, session: Session) -> Dict[str, Any]:
    order = repository.load_order(order_id, session)
    entries = repository.list_timeline(order_id, session)
    return {
        "order": order.to_dict(utc_now()),
        "timeline": [timeline_service.entry_to_dict(entry) for entry in entries],
        "valid_next_statuses": _ordered_statuses(workflow_engine.valid_next_states(order.status)),
    }


def get_production_workflow(order_id: int) -> CommandResult:
    """Order details with its timeline and the statuses it may move to next."""

    def read() -> Dict[str, Any]:
        with session_scope() as session:
            return _get_production_workflow_impl(order_id, session)

    return _query("get_production_workflow", read, order_id=order_id)


def get_production_timeline(order_id: int) -> CommandResult:
    """Full ordered timeline of an order plus duration metrics."""
    return _query(
        "get_production_timeline",
        lambda: timeline_service.get_timeline(order_id),
        order_id=order_id,
    )


def get_valid_next_statuses(order_id: int) -> CommandResult:
    """
    Statuses the order may legally move to, in workflow order.

    Terminal orders yield an empty list.
    """

    def read() -> List[str]:
        with session_scope() as session:
            order = repository.load_order(order_id, session)
            return _ordered_statuses(workflow_engine.valid_next_states(order.status))

    return _query("get_valid_next_statuses", read, order_id=order_id)


def get_employee_workload(include_overdue: bool = False) -> CommandResult:
    """Active order counts per assignee (and overdue counts if requested)."""
    return _query(
        "get_employee_workload",
        lambda: dashboard_service.get_employee_workload(include_overdue=include_overdue),
    )


def get_wip_dashboard(
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    assigned_to: Optional[str] = None,
) -> CommandResult:
    """WIP dashboard for an optional activity window and assignee."""

    def read() -> Dict[str, Any]:
        return dashboard_service.get_wip_dashboard(
            from_date=_parse_datetime(from_date, "from_date"),
            to_date=_parse_datetime(to_date, "to_date"),
            assigned_to=assigned_to,
        )

    return _query("get_wip_dashboard", read)


def get_active_productions(
    assigned_to: Optional[str] = None, status: Optional[ProductionStatus] = None
) -> CommandResult:
    """Non-terminal orders, optionally filtered by assignee and status."""

    def read() -> List[Dict[str, Any]]:
        parsed = _parse_status(status) if status is not None else None
        return dashboard_service.get_active_productions(assigned_to=assigned_to, status=parsed)

    return _query("get_active_productions", read)


def get_overdue_productions() -> CommandResult:
    """Active orders past their estimated completion, most overdue first."""
    return _query("get_overdue_productions", dashboard_service.get_overdue_productions)
