"""
Task records for priced units of work.

A TaskRecord is created pending when work is dispatched and completed exactly
once with the measured token counts and outcome. Completed records are never
modified or deleted.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from numbers import Real
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple

from .errors import InvalidMetrics
from .pricing import PricingTable, calculate_cost
from .token_counter import TokenUsage

_SCORE_MIN = 0.0
_SCORE_MAX = 10.0

# Accepted keys for loosely-shaped metric payloads, camelCase aliases included
_METRIC_KEYS = {
    "reusability_score": "reusability_score",
    "reusabilityScore": "reusability_score",
    "complexity_score": "complexity_score",
    "complexityScore": "complexity_score",
    "depends_on": "depends_on",
    "dependsOn": "depends_on",
    "artifacts_produced": "artifacts_produced",
    "artifactsProduced": "artifacts_produced",
}


class TaskStatus(Enum):
    """Lifecycle state of a task record."""
    PENDING = "pending"
    COMPLETED = "completed"


def _validate_score(name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidMetrics(f"{name} must be a number, got {type(value).__name__}")
    score = float(value)
    if math.isnan(score):
        raise InvalidMetrics(f"{name} cannot be NaN")
    if score < _SCORE_MIN or score > _SCORE_MAX:
        raise InvalidMetrics(f"{name} must be between 0 and 10, got {score}")
    return score


def _validate_names(name: str, values: Iterable[Any]) -> Tuple[str, ...]:
    if isinstance(values, (str, bytes)):
        raise InvalidMetrics(f"{name} must be a collection of names, not a string")
    try:
        items = tuple(values)
    except TypeError:
        raise InvalidMetrics(f"{name} must be a collection of names")
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise InvalidMetrics(f"{name} entries must be non-empty strings")
    return items


@dataclass(frozen=True)
class HierarchyMetrics:
    """Reusability and composition metrics reported for one task.

    Scores are on a 0-10 scale and optional. ``depends_on`` names artifacts
    produced by other tasks; ``artifacts_produced`` keeps production order.
    """
    reusability_score: Optional[float] = None
    complexity_score: Optional[float] = None
    depends_on: FrozenSet[str] = frozenset()
    artifacts_produced: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate and normalise the payload, failing fast on bad input."""
        object.__setattr__(
            self, "reusability_score",
            _validate_score("reusability_score", self.reusability_score),
        )
        object.__setattr__(
            self, "complexity_score",
            _validate_score("complexity_score", self.complexity_score),
        )
        object.__setattr__(
            self, "depends_on",
            frozenset(_validate_names("depends_on", self.depends_on)),
        )
        object.__setattr__(
            self, "artifacts_produced",
            _validate_names("artifacts_produced", self.artifacts_produced),
        )

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts_produced)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HierarchyMetrics":
        """Build metrics from a loosely-shaped mapping.

        Raises:
            InvalidMetrics: On unknown keys or invalid values
        """
        if not isinstance(data, Mapping):
            raise InvalidMetrics("metrics must be a mapping")

        unknown_keys = set(data.keys()) - set(_METRIC_KEYS)
        if unknown_keys:
            raise InvalidMetrics(f"Unknown metrics keys: {sorted(unknown_keys)}")

        kwargs = {}
        for key, value in data.items():
            target = _METRIC_KEYS[key]
            if target in kwargs:
                raise InvalidMetrics(f"Duplicate metrics key: {target}")
            kwargs[target] = value

        for key in ("depends_on", "artifacts_produced"):
            if kwargs.get(key) is None:
                kwargs.pop(key, None)

        return cls(**kwargs)


NO_METRICS = HierarchyMetrics()


@dataclass(frozen=True)
class TaskRecord:
    """One measured, priced unit of work."""
    task_id: str
    model_id: str
    task_category: str
    classification_level: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    input_cost: Decimal = Decimal("0")
    output_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    succeeded: bool = False
    error_message: Optional[str] = None
    metrics: HierarchyMetrics = NO_METRICS
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    pricing_fallback: bool = False

    @property
    def status(self) -> TaskStatus:
        if self.completed_at is None:
            return TaskStatus.PENDING
        return TaskStatus.COMPLETED

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def create_task_record(
    task_id: str,
    model_id: str,
    task_category: str,
    classification_level: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TaskRecord:
    """Create a pending task record."""
    if not task_id:
        raise ValueError("task_id is required and cannot be empty")
    if not model_id:
        raise ValueError("model_id is required and cannot be empty")
    return TaskRecord(
        task_id=task_id,
        model_id=model_id,
        task_category=task_category,
        classification_level=classification_level or None,
        started_at=now or datetime.now(),
    )


def complete_task_record(
    record: TaskRecord,
    usage: TokenUsage,
    pricing: PricingTable,
    succeeded: bool = True,
    error_message: Optional[str] = None,
    metrics: HierarchyMetrics = NO_METRICS,
    metadata: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> TaskRecord:
    """Return the completed version of a pending record.

    Args:
        record: Pending task record
        usage: Measured token usage
        pricing: Table to price the record's model against
        succeeded: Outcome reported by the caller
        error_message: Optional failure description
        metrics: Validated hierarchy metrics
        metadata: Free-form caller annotations
        now: Completion time, defaults to the current time

    Returns:
        A new, completed TaskRecord

    Raises:
        ValueError: If the record is already completed
    """
    if record.is_completed:
        raise ValueError(f"Task {record.task_id} is already completed")

    completed_at = now or datetime.now()
    elapsed = completed_at - record.started_at
    duration_ms = max(int(elapsed.total_seconds() * 1000), 0)

    cost = calculate_cost(record.model_id, usage, pricing)

    return replace(
        record,
        completed_at=completed_at,
        duration_ms=duration_ms,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        input_cost=cost.input_cost,
        output_cost=cost.output_cost,
        total_cost=cost.total_cost,
        succeeded=succeeded,
        error_message=error_message,
        metrics=metrics,
        metadata=MappingProxyType(dict(metadata or {})),
        pricing_fallback=cost.used_fallback,
    )


@dataclass(frozen=True)
class TaskEfficiency:
    """Throughput and per-artifact cost metrics for one completed task."""
    cost_per_second: Decimal
    tokens_per_second: float
    cost_per_token: Decimal
    cost_per_artifact: Optional[Decimal] = None
    artifact_rate: Optional[float] = None
    base_reusability_rating: Optional[float] = None
    composite_complexity_ratio: Optional[float] = None


def calculate_efficiency_metrics(
    record: TaskRecord,
    base_level: str = "base",
    composite_level: str = "composite",
) -> TaskEfficiency:
    """Calculate cost and throughput efficiency for a completed record.

    Level-specific figures are only filled in for classified tasks that
    produced at least one artifact.
    """
    seconds = Decimal(record.duration_ms) / Decimal(1000)
    tokens = record.total_tokens

    cost_per_second = record.total_cost / seconds if seconds > 0 else Decimal("0")
    tokens_per_second = tokens / float(seconds) if seconds > 0 else 0.0
    cost_per_token = record.total_cost / tokens if tokens > 0 else Decimal("0")

    artifacts = record.metrics.artifact_count
    if not record.classification_level or artifacts == 0:
        return TaskEfficiency(
            cost_per_second=cost_per_second,
            tokens_per_second=tokens_per_second,
            cost_per_token=cost_per_token,
        )

    base_rating = None
    complexity_ratio = None
    if record.classification_level == base_level:
        base_rating = record.metrics.reusability_score
    elif record.classification_level == composite_level:
        dependencies = len(record.metrics.depends_on)
        if dependencies > 0 and record.metrics.complexity_score is not None:
            complexity_ratio = record.metrics.complexity_score / dependencies
        else:
            complexity_ratio = 0.0

    return TaskEfficiency(
        cost_per_second=cost_per_second,
        tokens_per_second=tokens_per_second,
        cost_per_token=cost_per_token,
        cost_per_artifact=record.total_cost / artifacts,
        artifact_rate=artifacts / float(seconds) if seconds > 0 else 0.0,
        base_reusability_rating=base_rating,
        composite_complexity_ratio=complexity_ratio,
    )
