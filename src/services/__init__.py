"""Services package - Business logic layer for WIP Tracker.

This package contains the workflow core for production orders and the
read-only projections built on top of it.

Architecture:
- Services: Stateless functions organized by concern
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via the WorkflowError hierarchy
- Envelopes: Orchestrator commands and queries return CommandResult

Service Modules:
- transition_table: Static workflow policy (allowed edges, reasons)
- workflow_engine: Stateless authorization of transitions
- production_order_repository: Persistence boundary (load/save/append/query)
- production_orchestrator: Command and query entry points
- timeline_service: Audit trail projections, replay and durations
- dashboard_service: WIP dashboard, active/overdue lists, workload

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured operation logging
- dto: Result envelope, order filter and summaries
"""

from . import (
    database,
    transition_table,
    workflow_engine,
    production_order_repository,
    timeline_service,
    dashboard_service,
    production_orchestrator,
)

from .dto import CommandResult, OrderFilter, ProductionSummary

from .exceptions import (
    ServiceError,
    WorkflowError,
    OrderNotFound,
    InvalidTransition,
    NoOpTransition,
    OrderClosed,
    ValidationError,
    ConcurrencyConflict,
    PersistenceError,
)

from .workflow_engine import (
    SideEffect,
    TransitionDecision,
    TransitionRequest,
    authorize,
    authorize_assignment,
    valid_next_states,
)

from .production_orchestrator import (
    create_production_order,
    start_production,
    assign_production,
    update_production_status,
    complete_quality_check,
    put_on_hold,
    resume_from_hold,
    cancel_production,
    handle_material_shortage,
    handle_equipment_issue,
    get_production_workflow,
    get_production_timeline,
    get_valid_next_statuses,
    get_employee_workload,
    get_wip_dashboard,
    get_active_productions,
    get_overdue_productions,
)

__all__ = [
    # Modules
    "database",
    "transition_table",
    "workflow_engine",
    "production_order_repository",
    "timeline_service",
    "dashboard_service",
    "production_orchestrator",
    # DTOs
    "CommandResult",
    "OrderFilter",
    "ProductionSummary",
    # Exceptions
    "ServiceError",
    "WorkflowError",
    "OrderNotFound",
    "InvalidTransition",
    "NoOpTransition",
    "OrderClosed",
    "ValidationError",
    "ConcurrencyConflict",
    "PersistenceError",
    # Workflow engine
    "SideEffect",
    "TransitionDecision",
    "TransitionRequest",
    "authorize",
    "authorize_assignment",
    "valid_next_states",
    # Commands
    "create_production_order",
    "start_production",
    "assign_production",
    "update_production_status",
    "complete_quality_check",
    "put_on_hold",
    "resume_from_hold",
    "cancel_production",
    "handle_material_shortage",
    "handle_equipment_issue",
    # Queries
    "get_production_workflow",
    "get_production_timeline",
    "get_valid_next_statuses",
    "get_employee_workload",
    "get_wip_dashboard",
    "get_active_productions",
    "get_overdue_productions",
]
