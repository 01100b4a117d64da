"""Workflow Engine - stateless authorization of production order transitions.

Given an order's current status and a requested transition, the engine
either authorizes it, returning the new status together with the side
effects the caller must apply, or raises a typed WorkflowError. It never
touches the database and holds no state; all policy comes from
src.services.transition_table.

Check order for a request:
    1. Commands with a fixed source status (StartProduction needs Pending,
       CompleteQualityCheck needs QualityCheckPending) -> InvalidTransition
    2. Terminal current status -> OrderClosed
    3. Target equal to current status -> NoOpTransition
    4. Edge missing from the table -> InvalidTransition
    5. Missing required reason -> ValidationError

Example:
    >>> decision = authorize(
    ...     ProductionStatus.IN_PROGRESS,
    ...     TransitionRequest(WorkflowCommand.PUT_ON_HOLD, reason="parts delay"),
    ... )
    >>> decision.to_status
    <ProductionStatus.ON_HOLD: 'OnHold'>
    >>> SideEffect.SET_HOLD_REASON in decision.side_effects
    True
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from src.models.enums import ProductionStatus, WorkflowCommand
from src.services.exceptions import (
    InvalidTransition,
    NoOpTransition,
    OrderClosed,
    ValidationError,
)
from src.services.transition_table import (
    TransitionRule,
    find_rule,
    is_terminal,
    next_statuses,
)


class SideEffect(str, Enum):
    """Instructions the caller must carry out when applying a decision."""

    MARK_STARTED = "MarkStarted"
    MARK_COMPLETED = "MarkCompleted"
    SET_HOLD_REASON = "SetHoldReason"
    CLEAR_HOLD_REASON = "ClearHoldReason"
    RECORD_QUALITY_CHECK = "RecordQualityCheck"
    SET_ASSIGNEE = "SetAssignee"
    CLEAR_ASSIGNEE = "ClearAssignee"


@dataclass(frozen=True)
class TransitionRequest:
    """A command against one order, with the optional fields it may carry.

    Attributes:
        command: The command being issued
        target_status: Requested status (UpdateStatus only)
        reason: Reason text (required for hold and cancel)
        passed: Quality check outcome (CompleteQualityCheck only)
        assigned_to: Worker to assign (AssignProduction, optional on start)
    """

    command: WorkflowCommand
    target_status: Optional[ProductionStatus] = None
    reason: Optional[str] = None
    passed: Optional[bool] = None
    assigned_to: Optional[str] = None


@dataclass(frozen=True)
class TransitionDecision:
    """The outcome of a successful authorization."""

    from_status: ProductionStatus
    to_status: ProductionStatus
    command: WorkflowCommand
    side_effects: FrozenSet[SideEffect] = field(default_factory=frozenset)
    rule: Optional[TransitionRule] = None

    @property
    def changes_status(self) -> bool:
        """True unless the decision leaves the status unchanged (assignment)."""
        return self.from_status != self.to_status


_FIXED_TARGETS: Dict[WorkflowCommand, ProductionStatus] = {
    WorkflowCommand.START: ProductionStatus.IN_PROGRESS,
    WorkflowCommand.PUT_ON_HOLD: ProductionStatus.ON_HOLD,
    WorkflowCommand.RESUME_FROM_HOLD: ProductionStatus.IN_PROGRESS,
    WorkflowCommand.CANCEL: ProductionStatus.CANCELLED,
}

_REQUIRED_SOURCE: Dict[WorkflowCommand, ProductionStatus] = {
    WorkflowCommand.START: ProductionStatus.PENDING,
    WorkflowCommand.COMPLETE_QUALITY_CHECK: ProductionStatus.QUALITY_CHECK_PENDING,
}


def _has_text(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def _resolve_target(request: TransitionRequest) -> ProductionStatus:
    """Work out which status a request is asking for."""
    command = request.command
    if command in _FIXED_TARGETS:
        return _FIXED_TARGETS[command]
    if command == WorkflowCommand.COMPLETE_QUALITY_CHECK:
        if request.passed is None:
            raise ValidationError(["Quality check outcome (passed) is required"])
        return ProductionStatus.COMPLETED if request.passed else ProductionStatus.REWORK
    if command == WorkflowCommand.UPDATE_STATUS:
        if request.target_status is None:
            raise ValidationError(["New status is required"])
        return ProductionStatus(request.target_status)
    raise ValidationError([f"{command.value} does not change status"])


def _side_effects(
    current: ProductionStatus, target: ProductionStatus, request: TransitionRequest
) -> FrozenSet[SideEffect]:
    effects = set()
    if target == ProductionStatus.IN_PROGRESS:
        effects.add(SideEffect.MARK_STARTED)
    if target == ProductionStatus.ON_HOLD:
        effects.add(SideEffect.SET_HOLD_REASON)
    if current == ProductionStatus.ON_HOLD:
        effects.add(SideEffect.CLEAR_HOLD_REASON)
    if request.command == WorkflowCommand.COMPLETE_QUALITY_CHECK:
        effects.add(SideEffect.RECORD_QUALITY_CHECK)
    if target == ProductionStatus.COMPLETED:
        effects.add(SideEffect.MARK_COMPLETED)
    if target == ProductionStatus.CANCELLED:
        effects.add(SideEffect.CLEAR_ASSIGNEE)
    elif request.command == WorkflowCommand.START and _has_text(request.assigned_to):
        effects.add(SideEffect.SET_ASSIGNEE)
    return frozenset(effects)


def authorize_assignment(
    current: ProductionStatus, assigned_to: Optional[str]
) -> TransitionDecision:
    """
    Authorize an attribute-only assignment.

    Args:
        current: Current order status
        assigned_to: Worker identifier

    Returns:
        Decision whose from_status equals to_status

    Raises:
        OrderClosed: If the order is COMPLETED or CANCELLED
        ValidationError: If assigned_to is empty
    """
    if is_terminal(current):
        raise OrderClosed(current, WorkflowCommand.ASSIGN.value)
    if not _has_text(assigned_to):
        raise ValidationError(["Assignee is required"])
    return TransitionDecision(
        from_status=current,
        to_status=current,
        command=WorkflowCommand.ASSIGN,
        side_effects=frozenset({SideEffect.SET_ASSIGNEE}),
    )


def authorize(current: ProductionStatus, request: TransitionRequest) -> TransitionDecision:
    """
    Authorize a requested transition from ``current``.

    Args:
        current: Current order status
        request: The command and its optional fields

    Returns:
        TransitionDecision with the new status and required side effects

    Raises:
        InvalidTransition: Edge not in the transition table, or the command's
            fixed source status does not match
        NoOpTransition: Requested status equals the current status
        OrderClosed: Order is in a terminal status
        ValidationError: A required field (reason, outcome, status) is missing
    """
    command = request.command
    if command == WorkflowCommand.ASSIGN:
        return authorize_assignment(current, request.assigned_to)

    required_source = _REQUIRED_SOURCE.get(command)
    if required_source is not None and current != required_source:
        raise InvalidTransition(current, command=command.value)

    if is_terminal(current):
        raise OrderClosed(current, command.value)

    target = _resolve_target(request)
    if target == current:
        raise NoOpTransition(current)

    rule = find_rule(current, target, command)
    if rule is None:
        raise InvalidTransition(current, target, command.value)

    if rule.requires_reason and not _has_text(request.reason):
        raise ValidationError([f"A reason is required to move to {target.value}"])

    return TransitionDecision(
        from_status=current,
        to_status=target,
        command=command,
        side_effects=_side_effects(current, target, request),
        rule=rule,
    )


def valid_next_states(current: ProductionStatus) -> FrozenSet[ProductionStatus]:
    """Statuses reachable from ``current``; empty for terminal statuses."""
    return next_statuses(current)
