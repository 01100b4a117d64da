"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel, UTCDateTime
from .enums import Priority, ProductionStatus, TimelineEventType, WorkflowCommand
from .production_order import ProductionOrder
from .timeline_entry import TimelineEntry

__all__ = [
    "Base",
    "BaseModel",
    "UTCDateTime",
    # Enums
    "Priority",
    "ProductionStatus",
    "TimelineEventType",
    "WorkflowCommand",
    # Workflow models
    "ProductionOrder",
    "TimelineEntry",
]
