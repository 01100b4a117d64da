"""
TimelineEntry model for the production audit trail.

One row per accepted command. Rows are written in the same transaction as
the order update they describe and are never updated or deleted afterwards.
Replaying the status-changing rows of an order from PENDING reproduces the
order's current status.
"""

from sqlalchemy import (
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from .base import BaseModel, UTCDateTime
from .enums import ProductionStatus, TimelineEventType
from src.utils.datetime_utils import utc_now


class TimelineEntry(BaseModel):
    """
    Immutable record of one transition of a production order.

    Attributes:
        order_id: Foreign key to ProductionOrder
        from_status: Status before the command
        to_status: Status after the command (equal to from_status for
            attribute-only commands such as assignment)
        command: Name of the command that produced the entry
        event_type: Classification of the entry
        actor: User identity, or "System"
        reason: Reason supplied with the command
        notes: Free-text notes supplied with the command
        occurred_at: When the transition happened
        duration_in_minutes: Time spent in from_status before this entry
    """

    __tablename__ = "timeline_entries"

    order_id = Column(
        Integer, ForeignKey("production_orders.id", ondelete="RESTRICT"), nullable=False
    )
    from_status = Column(SQLEnum(ProductionStatus), nullable=False)
    to_status = Column(SQLEnum(ProductionStatus), nullable=False)
    command = Column(String(50), nullable=False)
    event_type = Column(
        SQLEnum(TimelineEventType), nullable=False, default=TimelineEventType.STATUS_CHANGED
    )
    actor = Column(String(100), nullable=False)
    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    occurred_at = Column(UTCDateTime, nullable=False, default=utc_now)
    duration_in_minutes = Column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        Index("idx_timeline_order_occurred", "order_id", "occurred_at"),
    )

    @property
    def changes_status(self) -> bool:
        """True unless this entry records an attribute-only change."""
        return self.from_status != self.to_status

    def __repr__(self) -> str:
        """String representation of timeline entry."""
        return (
            f"TimelineEntry(order_id={self.order_id}, "
            f"{self.from_status.value}->{self.to_status.value}, command='{self.command}')"
        )
