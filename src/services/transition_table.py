"""Transition table for the production workflow.

Static policy: for each status, the rules describing which statuses it may
move to, the command that triggers each move, and whether a reason is
required. The table is built once at import and exposed read-only; changing
policy means changing this module and redeploying.

Both the workflow engine's authorization and its "valid next statuses"
answer come from this table, so they cannot disagree.

    Pending             -> InProgress           StartProduction
    InProgress          -> OnHold               PutOnHold (reason)
    InProgress          -> QualityCheckPending  UpdateStatus
    OnHold              -> InProgress           ResumeFromHold
    QualityCheckPending -> Completed            CompleteQualityCheck(passed)
    QualityCheckPending -> Rework               CompleteQualityCheck(failed)
    Rework              -> InProgress           UpdateStatus
    any non-terminal    -> Cancelled            CancelProduction (reason)
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from src.models.enums import ProductionStatus, WorkflowCommand

S = ProductionStatus
C = WorkflowCommand


@dataclass(frozen=True)
class TransitionRule:
    """One allowed edge of the workflow graph.

    Attributes:
        from_status: Source status
        to_status: Target status
        command: Command that triggers the edge
        requires_reason: Whether a non-empty reason must accompany it
        quality_outcome: For quality check edges, the pass/fail outcome
            that selects this edge; None otherwise
    """

    from_status: ProductionStatus
    to_status: ProductionStatus
    command: WorkflowCommand
    requires_reason: bool = False
    quality_outcome: Optional[bool] = None


INITIAL_STATUS = S.PENDING

TERMINAL_STATUSES: FrozenSet[ProductionStatus] = frozenset({S.COMPLETED, S.CANCELLED})

ACTIVE_STATUSES: FrozenSet[ProductionStatus] = frozenset(
    status for status in ProductionStatus if status not in TERMINAL_STATUSES
)

# Commands the generic UpdateStatus command may stand in for. Quality check
# edges are excluded because they need a pass/fail outcome.
UPDATE_STATUS_PROXIES: FrozenSet[WorkflowCommand] = frozenset(
    {C.START, C.UPDATE_STATUS, C.PUT_ON_HOLD, C.RESUME_FROM_HOLD, C.CANCEL}
)

_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(S.PENDING, S.IN_PROGRESS, C.START),
    TransitionRule(S.IN_PROGRESS, S.ON_HOLD, C.PUT_ON_HOLD, requires_reason=True),
    TransitionRule(S.IN_PROGRESS, S.QUALITY_CHECK_PENDING, C.UPDATE_STATUS),
    TransitionRule(S.ON_HOLD, S.IN_PROGRESS, C.RESUME_FROM_HOLD),
    TransitionRule(S.QUALITY_CHECK_PENDING, S.COMPLETED, C.COMPLETE_QUALITY_CHECK, quality_outcome=True),
    TransitionRule(S.QUALITY_CHECK_PENDING, S.REWORK, C.COMPLETE_QUALITY_CHECK, quality_outcome=False),
    TransitionRule(S.REWORK, S.IN_PROGRESS, C.UPDATE_STATUS),
) + tuple(
    TransitionRule(status, S.CANCELLED, C.CANCEL, requires_reason=True)
    for status in (S.PENDING, S.IN_PROGRESS, S.ON_HOLD, S.QUALITY_CHECK_PENDING, S.REWORK)
)


def _build_table() -> Mapping[ProductionStatus, Tuple[TransitionRule, ...]]:
    table = {status: [] for status in ProductionStatus}
    for rule in _RULES:
        table[rule.from_status].append(rule)
    return MappingProxyType({status: tuple(rules) for status, rules in table.items()})


TRANSITION_TABLE: Mapping[ProductionStatus, Tuple[TransitionRule, ...]] = _build_table()


def rules_from(status: ProductionStatus) -> Tuple[TransitionRule, ...]:
    """Return the outgoing rules of a status (empty for terminal statuses)."""
    return TRANSITION_TABLE[status]


def next_statuses(status: ProductionStatus) -> FrozenSet[ProductionStatus]:
    """Return every status reachable in one step from ``status``."""
    return frozenset(rule.to_status for rule in TRANSITION_TABLE[status])


def is_terminal(status: ProductionStatus) -> bool:
    """Return True if the given status has no outgoing transitions."""
    return status in TERMINAL_STATUSES


def find_rule(
    from_status: ProductionStatus,
    to_status: ProductionStatus,
    command: WorkflowCommand,
) -> Optional[TransitionRule]:
    """
    Find the rule allowing ``command`` to move ``from_status`` to ``to_status``.

    UpdateStatus matches any edge whose own command it may stand in for.

    Returns:
        The matching TransitionRule, or None if the edge is not allowed
    """
    for rule in TRANSITION_TABLE[from_status]:
        if rule.to_status != to_status:
            continue
        if rule.command == command:
            return rule
        if command == C.UPDATE_STATUS and rule.command in UPDATE_STATUS_PROXIES:
            return rule
    return None
