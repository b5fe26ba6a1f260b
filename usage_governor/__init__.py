"""
Usage Governor.

Meters cost, token usage and throughput of priced model calls, aggregates
them into session analytics, and emits soft-limit warnings.
"""

from .core.analytics import (
    check_limits,
    get_cost_projection,
    get_health_assessment,
    get_summary,
)
from .core.errors import (
    AlreadyEnded,
    BudgetExceeded,
    DuplicateSession,
    DuplicateTask,
    InvalidMetrics,
    InvalidState,
    UnknownSession,
    UnknownTask,
    UsageGovernorError,
)
from .core.guardrails import can_start_task, start_task_within_budget
from .core.pricing import DEFAULT_PRICING_TABLE, PricingEntry, PricingTable
from .core.session import (
    SessionTracker,
    complete_task,
    create_session,
    end_session,
    start_task,
)
from .core.task import HierarchyMetrics, TaskRecord
from .storage.registry import SessionRegistry

__all__ = [
    "AlreadyEnded",
    "BudgetExceeded",
    "DEFAULT_PRICING_TABLE",
    "DuplicateSession",
    "DuplicateTask",
    "HierarchyMetrics",
    "InvalidMetrics",
    "InvalidState",
    "PricingEntry",
    "PricingTable",
    "SessionRegistry",
    "SessionTracker",
    "TaskRecord",
    "UnknownSession",
    "UnknownTask",
    "UsageGovernorError",
    "can_start_task",
    "check_limits",
    "complete_task",
    "create_session",
    "end_session",
    "get_cost_projection",
    "get_health_assessment",
    "get_summary",
    "start_task",
    "start_task_within_budget",
]
