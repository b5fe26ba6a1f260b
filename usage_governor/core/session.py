"""
Session tracking for priced units of work.

A SessionTracker is an immutable value. Every lifecycle operation takes the
current tracker and returns a new one; the caller keeps the returned value as
the new current state. Totals, rollups and hierarchy health are folded in
incrementally as each task completes.

Lifecycle:
    create_session -> start_task / complete_task ... -> end_session
"""

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from .errors import AlreadyEnded, DuplicateTask, InvalidMetrics, InvalidState, UnknownTask
from .hierarchy import (
    DEFAULT_HIERARCHY_CONFIG,
    HierarchyConfig,
    HierarchyHealth,
    update_hierarchy_health,
)
from .pricing import DEFAULT_PRICING_TABLE, PricingTable
from .rollups import (
    Rollup,
    fold_category_rollup,
    fold_level_rollup,
    fold_model_rollup,
)
from .task import (
    NO_METRICS,
    HierarchyMetrics,
    TaskRecord,
    complete_task_record,
    create_task_record,
)
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

MetricsInput = Union[HierarchyMetrics, Mapping[str, Any], None]


def _empty() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class SessionTracker:
    """All accounting state for one bounded work session.

    ``total_cost`` always equals the sum of ``total_cost`` over completed
    tasks. Pending tasks never contribute to any aggregate.
    """
    session_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    is_active: bool = True
    tasks: Mapping[str, TaskRecord] = field(default_factory=_empty)
    model_rollup: Rollup = field(default_factory=_empty)
    category_rollup: Rollup = field(default_factory=_empty)
    level_rollup: Rollup = field(default_factory=_empty)
    hierarchy: HierarchyHealth = field(default_factory=HierarchyHealth)
    total_cost: Decimal = Decimal("0")
    total_tokens: int = 0
    completed_count: int = 0
    success_count: int = 0
    pricing: PricingTable = DEFAULT_PRICING_TABLE
    hierarchy_config: HierarchyConfig = DEFAULT_HIERARCHY_CONFIG

    @property
    def success_rate(self) -> float:
        """Completed-successful over completed-total, 0 when nothing completed."""
        if self.completed_count == 0:
            return 0.0
        return self.success_count / self.completed_count

    @property
    def pending_count(self) -> int:
        return len(self.tasks) - self.completed_count


def _generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def create_session(
    session_id: Optional[str] = None,
    pricing: Optional[PricingTable] = None,
    hierarchy_config: Optional[HierarchyConfig] = None,
    now: Optional[datetime] = None,
) -> SessionTracker:
    """Create a new, active session tracker.

    Args:
        session_id: Identifier to use; generated when omitted
        pricing: Pricing table override for this session
        hierarchy_config: Level names and reusability weights
        now: Start time, defaults to the current time

    Returns:
        An empty, active SessionTracker
    """
    config = hierarchy_config or DEFAULT_HIERARCHY_CONFIG
    session = SessionTracker(
        session_id=session_id or _generate_session_id(),
        started_at=now or datetime.now(),
        hierarchy=HierarchyHealth(config=config),
        pricing=pricing or DEFAULT_PRICING_TABLE,
        hierarchy_config=config,
    )
    logger.info("Created session %s", session.session_id)
    return session


def start_task(
    session: SessionTracker,
    task_id: str,
    model_id: str,
    task_category: str,
    classification_level: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionTracker:
    """Start tracking a task, returning the new session value.

    Raises:
        InvalidState: If the session has ended
        DuplicateTask: If the task id already exists in the session
    """
    if not session.is_active:
        raise InvalidState(
            f"Session {session.session_id} is not active", session.session_id, task_id
        )
    if task_id in session.tasks:
        raise DuplicateTask(session.session_id, task_id)

    record = create_task_record(task_id, model_id, task_category, classification_level, now)
    tasks = dict(session.tasks)
    tasks[task_id] = record

    level_info = f" ({record.classification_level} level)" if record.classification_level else ""
    logger.debug(
        "Started task %s with %s for %s%s", task_id, model_id, task_category, level_info
    )
    return replace(session, tasks=MappingProxyType(tasks))


def _coerce_metrics(metrics: MetricsInput) -> HierarchyMetrics:
    if metrics is None:
        return NO_METRICS
    if isinstance(metrics, HierarchyMetrics):
        return metrics
    if isinstance(metrics, Mapping):
        return HierarchyMetrics.from_mapping(metrics)
    raise InvalidMetrics(
        f"metrics must be HierarchyMetrics or a mapping, got {type(metrics).__name__}"
    )


def complete_task(
    session: SessionTracker,
    task_id: str,
    input_tokens: int,
    output_tokens: int,
    succeeded: bool = True,
    error_message: Optional[str] = None,
    metrics: MetricsInput = None,
    metadata: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> SessionTracker:
    """Complete a pending task and fold it into every aggregate.

    The input ``session`` is never modified; on failure it remains the valid
    current state.

    Args:
        session: Current session value
        task_id: Pending task to complete
        input_tokens: Measured input token count
        output_tokens: Measured output token count
        succeeded: Outcome of the priced call
        error_message: Optional failure description
        metrics: HierarchyMetrics or a mapping validated into one
        metadata: Free-form caller annotations kept on the record
        now: Completion time, defaults to the current time

    Returns:
        New SessionTracker including the completed record

    Raises:
        InvalidState: If the session has ended or the task already completed
        UnknownTask: If the task id is absent
        InvalidMetrics: If the metrics payload is malformed
        ValueError: If token counts are invalid
    """
    if not session.is_active:
        raise InvalidState(
            f"Session {session.session_id} is not active", session.session_id, task_id
        )
    record = session.tasks.get(task_id)
    if record is None:
        raise UnknownTask(session.session_id, task_id)
    if record.is_completed:
        raise InvalidState(
            f"Task {task_id} is already completed", session.session_id, task_id
        )

    usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)
    completed = complete_task_record(
        record,
        usage,
        session.pricing,
        succeeded=succeeded,
        error_message=error_message,
        metrics=_coerce_metrics(metrics),
        metadata=metadata,
        now=now,
    )

    tasks = dict(session.tasks)
    tasks[task_id] = completed
    config = session.hierarchy_config

    level_info = f" ({completed.classification_level})" if completed.classification_level else ""
    logger.info(
        "Completed task %s%s: $%.4f (%d tokens)",
        task_id, level_info, completed.total_cost, completed.total_tokens,
    )

    return replace(
        session,
        tasks=MappingProxyType(tasks),
        model_rollup=fold_model_rollup(
            session.model_rollup, completed, config.base_level, config.composite_level
        ),
        category_rollup=fold_category_rollup(session.category_rollup, completed),
        level_rollup=fold_level_rollup(session.level_rollup, completed),
        hierarchy=update_hierarchy_health(session.hierarchy, completed),
        total_cost=session.total_cost + completed.total_cost,
        total_tokens=session.total_tokens + completed.total_tokens,
        completed_count=session.completed_count + 1,
        success_count=session.success_count + (1 if completed.succeeded else 0),
    )


def end_session(session: SessionTracker, now: Optional[datetime] = None) -> SessionTracker:
    """End the session, freezing it against further task activity.

    Raises:
        AlreadyEnded: If the session has already ended
    """
    if not session.is_active:
        raise AlreadyEnded(session.session_id)

    logger.info("Session %s ended: $%.4f total cost", session.session_id, session.total_cost)
    return replace(session, ended_at=now or datetime.now(), is_active=False)
