"""
Constants for the WIP Tracker application.

This module defines all system-wide constants including:
- Application metadata
- Database defaults
- Workflow defaults (actor names, thresholds)
- Progress percentages shown for each production status
"""

from typing import Dict, Optional

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "WIP Tracker"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# ============================================================================
# Database
# ============================================================================

DATABASE_FILENAME = "wip_tracker.db"

# Seconds a persistence call may wait on a locked database before failing
DEFAULT_PERSISTENCE_TIMEOUT = 30.0

# ============================================================================
# Workflow Defaults
# ============================================================================

# Actor recorded on timeline entries when the caller supplies none
SYSTEM_ACTOR = "System"

# Active orders a worker may already carry before an assignment logs a warning
DEFAULT_WORKLOAD_WARNING_THRESHOLD = 5

# Upper bound on the "recent orders" list of the WIP dashboard
DEFAULT_RECENT_ORDERS_LIMIT = 10

# Fallback for completion estimates when no history exists
DEFAULT_HOURS_PER_UNIT = 2.0

# Prefixes used by the hold helpers
MATERIAL_SHORTAGE_PREFIX = "Material shortage: "
EQUIPMENT_ISSUE_PREFIX = "Equipment issue: "

# ============================================================================
# Progress
# ============================================================================

# Keyed by ProductionStatus value; None means progress is not meaningful
PROGRESS_PERCENTAGE: Dict[str, Optional[int]] = {
    "Pending": 0,
    "InProgress": 50,
    "Rework": 40,
    "QualityCheckPending": 85,
    "Completed": 100,
    "OnHold": None,
    "Cancelled": None,
}
