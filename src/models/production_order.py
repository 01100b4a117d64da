"""
ProductionOrder model for tracking work-in-progress.

A production order is one manufacturing job. It is created in PENDING and
afterwards mutated only through the production orchestrator, which validates
every change against the workflow engine and records a timeline entry for it.
Orders are never deleted; COMPLETED and CANCELLED orders are kept for history.

The ``version`` column is the mapper's version counter: every UPDATE is issued
as ``... WHERE id = ? AND version = ?`` and bumps it by one, so a write based
on a stale read fails with StaleDataError instead of silently overwriting.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SQLEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from .base import BaseModel, UTCDateTime
from .enums import Priority, ProductionStatus
from src.utils.constants import PROGRESS_PERCENTAGE
from src.utils.datetime_utils import utc_now


class ProductionOrder(BaseModel):
    """
    ProductionOrder model for one manufacturing job.

    Attributes:
        reference: Free-text reference (e.g. BOM or job number)
        quantity: Units to produce (must be > 0)
        unit_value: Value per unit, used for WIP value metrics
        priority: Scheduling priority
        status: Current workflow state
        previous_status: State before the last status change
        assigned_to: Worker currently responsible for the order
        assigned_by: Actor that made the current assignment
        estimated_completion: Target completion timestamp
        started_at: First time the order entered IN_PROGRESS
        completed_at: Time the order reached COMPLETED
        hold_reason: Reason for the hold; set only while ON_HOLD
        quality_check_passed: Outcome of the last quality check
        quality_check_notes: Notes recorded with the last quality check
        quality_checker_id: Identifier of the last checker
        quality_check_at: Time of the last quality check
        notes: Free-text notes from the last status update
        last_transition_at: Time of the last accepted command
        last_modified_by: Actor of the last accepted command
        version: Optimistic concurrency counter
    """

    __tablename__ = "production_orders"

    reference = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_value = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    priority = Column(SQLEnum(Priority), nullable=False, default=Priority.NORMAL)

    status = Column(
        SQLEnum(ProductionStatus), nullable=False, default=ProductionStatus.PENDING
    )
    previous_status = Column(SQLEnum(ProductionStatus), nullable=True)

    assigned_to = Column(String(100), nullable=True)
    assigned_by = Column(String(100), nullable=True)

    estimated_completion = Column(UTCDateTime, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)

    hold_reason = Column(String(200), nullable=True)

    quality_check_passed = Column(Boolean, nullable=True)
    quality_check_notes = Column(String(500), nullable=True)
    quality_checker_id = Column(String(100), nullable=True)
    quality_check_at = Column(UTCDateTime, nullable=True)

    notes = Column(Text, nullable=True)

    last_transition_at = Column(UTCDateTime, nullable=False, default=utc_now)
    last_modified_by = Column(String(100), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_production_order_quantity_positive"),
        CheckConstraint("unit_value >= 0", name="ck_production_order_unit_value_non_negative"),
        Index("idx_production_order_status", "status"),
        Index("idx_production_order_assigned_to", "assigned_to"),
        Index("idx_production_order_estimated_completion", "estimated_completion"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """
        Check whether the order is past its estimated completion.

        Only active (non-terminal) orders can be overdue.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            True if active and estimated_completion < now
        """
        if self.estimated_completion is None or self.is_terminal:
            return False
        return self.estimated_completion < (now or utc_now())

    def overdue_by(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """How far past the estimate an overdue order is, or None."""
        if not self.is_overdue(now):
            return None
        return (now or utc_now()) - self.estimated_completion

    @property
    def duration(self) -> Optional[timedelta]:
        """Elapsed time from start to completion, if both are known."""
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    @property
    def total_value(self) -> Decimal:
        """Quantity multiplied by unit value."""
        unit_value = self.unit_value if self.unit_value is not None else Decimal("0")
        return Decimal(str(unit_value)) * Decimal(self.quantity or 0)

    @property
    def progress_percentage(self) -> Optional[int]:
        return PROGRESS_PERCENTAGE.get(self.status.value)

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Convert to dictionary, including derived workflow fields.

        Args:
            now: Reference time for overdue calculation

        Returns:
            Dictionary representation
        """
        result = super().to_dict()
        duration = self.duration
        result.update(
            {
                "is_terminal": self.is_terminal,
                "is_overdue": self.is_overdue(now),
                "progress_percentage": self.progress_percentage,
                "total_value": str(self.total_value),
                "duration_hours": (
                    round(duration.total_seconds() / 3600, 2) if duration is not None else None
                ),
            }
        )
        return result

    def __repr__(self) -> str:
        """String representation of production order."""
        status = self.status.value if self.status is not None else None
        return f"ProductionOrder(id={self.id}, status='{status}', version={self.version})"
