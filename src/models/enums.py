"""
Enumerations for production workflow tracking.

This module contains enums used across the workflow models and services:
- ProductionStatus: Lifecycle state of a production order
- WorkflowCommand: Commands accepted by the production orchestrator
- TimelineEventType: Classification of timeline (audit) entries
- Priority: Scheduling priority of a production order
"""

from enum import Enum


class ProductionStatus(str, Enum):
    """
    Lifecycle state of a production order.

    Status transitions (see src.services.transition_table):
        PENDING -> IN_PROGRESS (start)
        IN_PROGRESS -> ON_HOLD | QUALITY_CHECK_PENDING
        ON_HOLD -> IN_PROGRESS (resume)
        QUALITY_CHECK_PENDING -> COMPLETED | REWORK (quality check outcome)
        REWORK -> IN_PROGRESS
        any non-terminal -> CANCELLED

    Terminal states: COMPLETED, CANCELLED
    """

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    ON_HOLD = "OnHold"
    QUALITY_CHECK_PENDING = "QualityCheckPending"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REWORK = "Rework"

    @property
    def is_terminal(self) -> bool:
        return self in (ProductionStatus.COMPLETED, ProductionStatus.CANCELLED)


class WorkflowCommand(str, Enum):
    """Commands that can act on a production order."""

    START = "StartProduction"
    ASSIGN = "AssignProduction"
    UPDATE_STATUS = "UpdateStatus"
    COMPLETE_QUALITY_CHECK = "CompleteQualityCheck"
    PUT_ON_HOLD = "PutOnHold"
    RESUME_FROM_HOLD = "ResumeFromHold"
    CANCEL = "CancelProduction"


class TimelineEventType(str, Enum):
    """
    Classification of a timeline entry.

    Values:
        STATUS_CHANGED: Status moved from one state to another
        ASSIGNMENT_CHANGED: Assignee changed, status unchanged
        QUALITY_CHECK_COMPLETED: Quality check passed, order completed
        QUALITY_CHECK_FAILED: Quality check failed, order sent to rework
    """

    STATUS_CHANGED = "StatusChanged"
    ASSIGNMENT_CHANGED = "AssignmentChanged"
    QUALITY_CHECK_COMPLETED = "QualityCheckCompleted"
    QUALITY_CHECK_FAILED = "QualityCheckFailed"


class Priority(str, Enum):
    """Scheduling priority of a production order."""

    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def is_high(self) -> bool:
        return self in (Priority.HIGH, Priority.CRITICAL)
