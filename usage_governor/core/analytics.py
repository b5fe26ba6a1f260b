"""
Read-only analytics over a session tracker.

Every function here is pure: it reads a SessionTracker and returns a new
value without touching the session.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Mapping, Optional, Tuple

from .hierarchy import HierarchyHealth
from .rollups import Rollup
from .session import SessionTracker

DEFAULT_MAX_SESSION_COST = Decimal("5.00")
DEFAULT_MAX_TASK_COST = Decimal("0.50")
DEFAULT_WARNING_RATIO = Decimal("0.8")
DEFAULT_MATURITY_TASKS = 5
RECENT_TASK_WINDOW = 3


@dataclass(frozen=True)
class SessionEfficiency:
    """Session-level throughput."""
    cost_per_second: Decimal
    tokens_per_second: float
    avg_task_duration_ms: float


@dataclass(frozen=True)
class SessionSummary:
    """Snapshot of a session's totals, rollups and hierarchy health."""
    session_id: str
    elapsed_ms: int
    is_active: bool
    total_cost: Decimal
    total_tokens: int
    success_rate: float
    tasks_completed: int
    tasks_total: int
    model_breakdown: Rollup
    category_breakdown: Rollup
    level_breakdown: Rollup
    hierarchy: HierarchyHealth
    efficiency: SessionEfficiency
    pricing_substitutions: Tuple[str, ...]

    @property
    def used_fallback_pricing(self) -> bool:
        return bool(self.pricing_substitutions)


def get_summary(session: SessionTracker, now: Optional[datetime] = None) -> SessionSummary:
    """Build a summary of the session.

    Elapsed time runs to ``ended_at`` for ended sessions and to ``now`` for
    active ones. Rates are 0 when no time has elapsed.
    """
    end = session.ended_at or now or datetime.now()
    elapsed_ms = max(int((end - session.started_at).total_seconds() * 1000), 0)
    elapsed_seconds = Decimal(elapsed_ms) / Decimal(1000)

    completed = [t for t in session.tasks.values() if t.is_completed]
    if elapsed_seconds > 0:
        cost_per_second = session.total_cost / elapsed_seconds
        tokens_per_second = session.total_tokens / float(elapsed_seconds)
    else:
        cost_per_second = Decimal("0")
        tokens_per_second = 0.0
    avg_duration = (
        sum(t.duration_ms for t in completed) / len(completed) if completed else 0.0
    )

    substitutions = sorted({t.model_id for t in completed if t.pricing_fallback})

    return SessionSummary(
        session_id=session.session_id,
        elapsed_ms=elapsed_ms,
        is_active=session.is_active,
        total_cost=session.total_cost,
        total_tokens=session.total_tokens,
        success_rate=session.success_rate,
        tasks_completed=session.completed_count,
        tasks_total=len(session.tasks),
        model_breakdown=session.model_rollup,
        category_breakdown=session.category_rollup,
        level_breakdown=session.level_rollup,
        hierarchy=session.hierarchy,
        efficiency=SessionEfficiency(
            cost_per_second=cost_per_second,
            tokens_per_second=tokens_per_second,
            avg_task_duration_ms=avg_duration,
        ),
        pricing_substitutions=tuple(substitutions),
    )


@dataclass(frozen=True)
class CostProjection:
    """Projected session totals after the remaining tasks."""
    projected_total_cost: Decimal
    projected_total_tokens: float
    confidence: float
    avg_cost_per_task: Optional[Decimal] = None
    avg_tokens_per_task: Optional[float] = None


def get_cost_projection(
    session: SessionTracker,
    estimated_remaining_tasks: int = 0,
    maturity_tasks: int = DEFAULT_MATURITY_TASKS,
) -> CostProjection:
    """Project final cost by extrapolating the average completed task.

    ``confidence`` is a maturity heuristic, ``min(completed / maturity_tasks,
    1)``. It is a deliberate approximation and not a statistical confidence
    interval.

    Raises:
        ValueError: If estimated_remaining_tasks is not a non-negative integer or
            maturity_tasks is not positive
    """
    if isinstance(estimated_remaining_tasks, bool) or not isinstance(estimated_remaining_tasks, int):
        raise ValueError("estimated_remaining_tasks must be an integer")
    if estimated_remaining_tasks < 0:
        raise ValueError("estimated_remaining_tasks cannot be negative")
    if maturity_tasks <= 0:
        raise ValueError("maturity_tasks must be > 0")

    completed = session.completed_count
    if completed == 0:
        return CostProjection(
            projected_total_cost=session.total_cost,
            projected_total_tokens=session.total_tokens,
            confidence=0.0,
        )

    avg_cost = session.total_cost / completed
    avg_tokens = session.total_tokens / completed
    return CostProjection(
        projected_total_cost=session.total_cost + avg_cost * estimated_remaining_tasks,
        projected_total_tokens=session.total_tokens + avg_tokens * estimated_remaining_tasks,
        confidence=min(completed / maturity_tasks, 1.0),
        avg_cost_per_task=avg_cost,
        avg_tokens_per_task=avg_tokens,
    )


class WarningType(Enum):
    """Kinds of limit warnings."""
    SESSION_COST = "session_cost_warning"
    TASK_COST = "task_cost_warning"


class WarningSeverity(Enum):
    """Severity levels for limit warnings."""
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TaskCostBreach:
    """A recent task whose cost exceeded the per-task limit."""
    task_id: str
    cost: Decimal
    model_id: str


@dataclass(frozen=True)
class LimitWarning:
    """Advisory limit warning. Never blocks further work on its own."""
    type: WarningType
    severity: WarningSeverity
    message: str
    tasks: Tuple[TaskCostBreach, ...] = ()


def check_limits(
    session: SessionTracker,
    max_session_cost: Decimal = DEFAULT_MAX_SESSION_COST,
    max_task_cost: Decimal = DEFAULT_MAX_TASK_COST,
    warning_ratio: Decimal = DEFAULT_WARNING_RATIO,
) -> List[LimitWarning]:
    """Check the session against soft cost limits.

    Rules:
    - Session cost: CRITICAL above ``max_session_cost``, WARNING above
      ``warning_ratio * max_session_cost``
    - Task cost: one WARNING listing those of the three most recently
      completed tasks that cost more than ``max_task_cost``

    Returns:
        List of warnings (empty if none)

    Raises:
        ValueError: If warning_ratio is not in (0, 1]
    """
    max_session_cost = Decimal(str(max_session_cost))
    max_task_cost = Decimal(str(max_task_cost))
    warning_ratio = Decimal(str(warning_ratio))
    if not 0 < warning_ratio <= 1:
        raise ValueError("warning_ratio must be in (0, 1]")

    warnings = []

    total = session.total_cost
    if total > max_session_cost * warning_ratio:
        severity = (
            WarningSeverity.CRITICAL if total > max_session_cost else WarningSeverity.WARNING
        )
        warnings.append(LimitWarning(
            type=WarningType.SESSION_COST,
            severity=severity,
            message=f"Session cost (${total:.4f}) approaching limit (${max_session_cost:.2f})",
        ))

    recent = sorted(
        (t for t in session.tasks.values() if t.is_completed),
        key=lambda t: t.completed_at,
        reverse=True,
    )[:RECENT_TASK_WINDOW]
    breaches = tuple(
        TaskCostBreach(task_id=t.task_id, cost=t.total_cost, model_id=t.model_id)
        for t in recent
        if t.total_cost > max_task_cost
    )
    if breaches:
        warnings.append(LimitWarning(
            type=WarningType.TASK_COST,
            severity=WarningSeverity.WARNING,
            message=f"{len(breaches)} recent tasks exceeded cost limit (${max_task_cost:.2f})",
            tasks=breaches,
        ))

    return warnings


class HealthTier(Enum):
    """Qualitative hierarchy health tiers."""
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"


_TIER_RECOMMENDATIONS: Mapping[HealthTier, Tuple[str, ...]] = {
    HealthTier.EXCELLENT: (
        "Continue focusing on base-first composition",
    ),
    HealthTier.GOOD: (
        "Consider improving base-level reusability scores",
    ),
    HealthTier.NEEDS_IMPROVEMENT: (
        "Focus more on reusable base-level artifacts",
        "Prioritize base-level generation over composite creation",
    ),
}


@dataclass(frozen=True)
class HealthAssessment:
    """Qualitative reading of the hierarchy health."""
    tier: HealthTier
    reusability_index: float
    efficiency_score: float
    recommendations: Tuple[str, ...]
    base_first: bool
    reusability_focus: bool
    simplicity_maintained: bool


def _tier_for(index: float) -> HealthTier:
    if index > 8:
        return HealthTier.EXCELLENT
    if index > 6:
        return HealthTier.GOOD
    return HealthTier.NEEDS_IMPROVEMENT


def get_health_assessment(session: SessionTracker) -> HealthAssessment:
    """Assess hierarchy health and produce recommendations."""
    health = session.hierarchy
    config = health.config

    ratio = health.base_to_composite_ratio
    base_reusability = health.avg_base_reusability
    composite_complexity = health.avg_composite_complexity

    tier = _tier_for(health.reusability_index)
    recommendations = list(_TIER_RECOMMENDATIONS[tier])

    efficiency_score = (
        ratio * 0.4
        + (base_reusability / 10) * 0.4
        + ((10 - composite_complexity) / 10) * 0.2
    ) * 10

    base_costs = health.cost_efficiency_by_level.get(config.base_level)
    composite_costs = health.cost_efficiency_by_level.get(config.composite_level)
    if base_costs and composite_costs and composite_costs.avg_cost_per_artifact > 0:
        cost_ratio = base_costs.avg_cost_per_artifact / composite_costs.avg_cost_per_artifact
        if cost_ratio > Decimal("0.8"):
            recommendations.append(
                "Base artifacts are relatively expensive - optimize base generation prompts"
            )
        elif cost_ratio < Decimal("0.3"):
            recommendations.append(
                "Excellent base cost efficiency - base artifacts are much cheaper than composites"
            )

    return HealthAssessment(
        tier=tier,
        reusability_index=health.reusability_index,
        efficiency_score=efficiency_score,
        recommendations=tuple(recommendations),
        base_first=ratio > 0.6,
        reusability_focus=base_reusability > 7,
        simplicity_maintained=composite_complexity < 6,
    )
