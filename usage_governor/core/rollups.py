"""
Incremental aggregate rollups.

Three independent aggregators fold each completed task into a bucket keyed by
model identifier, task category, or classification level. Every fold is O(1)
in the history size: buckets keep running sums and counts, and averages are
derived from them rather than recomputed from past records.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, FrozenSet, Mapping, Optional, TypeVar

from .task import TaskRecord

B = TypeVar("B", bound="RollupBucket")

Rollup = Mapping[str, "RollupBucket"]


@dataclass(frozen=True)
class RollupBucket:
    """Running totals for one key of one dimension."""
    task_count: int = 0
    total_cost: Decimal = Decimal("0")
    total_tokens: int = 0
    total_duration_ms: int = 0
    success_count: int = 0
    failure_count: int = 0

    @property
    def avg_cost_per_task(self) -> Decimal:
        if self.task_count == 0:
            return Decimal("0")
        return self.total_cost / self.task_count

    @property
    def avg_tokens_per_task(self) -> float:
        if self.task_count == 0:
            return 0.0
        return self.total_tokens / self.task_count

    @property
    def avg_duration_ms(self) -> float:
        if self.task_count == 0:
            return 0.0
        return self.total_duration_ms / self.task_count

    @property
    def success_rate(self) -> float:
        if self.task_count == 0:
            return 0.0
        return self.success_count / self.task_count

    def _folded(self: B, record: TaskRecord, **extra) -> B:
        return replace(
            self,
            task_count=self.task_count + 1,
            total_cost=self.total_cost + record.total_cost,
            total_tokens=self.total_tokens + record.total_tokens,
            total_duration_ms=self.total_duration_ms + record.duration_ms,
            success_count=self.success_count + (1 if record.succeeded else 0),
            failure_count=self.failure_count + (0 if record.succeeded else 1),
            **extra,
        )


@dataclass(frozen=True)
class ModelBucket(RollupBucket):
    """Per-model totals, split by base/composite work."""
    base_task_count: int = 0
    composite_task_count: int = 0

    def fold(self, record: TaskRecord, base_level: str, composite_level: str) -> "ModelBucket":
        level = record.classification_level
        return self._folded(
            record,
            base_task_count=self.base_task_count + (1 if level == base_level else 0),
            composite_task_count=self.composite_task_count + (1 if level == composite_level else 0),
        )


@dataclass(frozen=True)
class CategoryBucket(RollupBucket):
    """Per-category totals and the models that served the category."""
    models_used: FrozenSet[str] = frozenset()

    def fold(self, record: TaskRecord) -> "CategoryBucket":
        return self._folded(record, models_used=self.models_used | {record.model_id})


def _running_mean(avg: float, count: int, value: Optional[float]) -> float:
    if value is None:
        return avg
    return (avg * count + value) / (count + 1)


@dataclass(frozen=True)
class LevelBucket(RollupBucket):
    """Per-classification-level totals with running score averages.

    Score averages are per task over every task at the level. A task without
    a score counts toward later averages but leaves the current one as it was.
    """
    artifact_count: int = 0
    avg_reusability: float = 0.0
    avg_complexity: float = 0.0

    @property
    def avg_cost_per_artifact(self) -> Decimal:
        if self.artifact_count == 0:
            return Decimal("0")
        return self.total_cost / self.artifact_count

    def fold(self, record: TaskRecord) -> "LevelBucket":
        return self._folded(
            record,
            artifact_count=self.artifact_count + record.metrics.artifact_count,
            avg_reusability=_running_mean(
                self.avg_reusability, self.task_count, record.metrics.reusability_score
            ),
            avg_complexity=_running_mean(
                self.avg_complexity, self.task_count, record.metrics.complexity_score
            ),
        )


EMPTY_ROLLUP: Rollup = MappingProxyType({})


def _fold_key(
    rollup: Rollup,
    key: str,
    factory: Callable[[], B],
    fold: Callable[[B], B],
) -> Rollup:
    buckets = dict(rollup)
    buckets[key] = fold(buckets.get(key) or factory())
    return MappingProxyType(buckets)


def fold_model_rollup(
    rollup: Rollup,
    record: TaskRecord,
    base_level: str = "base",
    composite_level: str = "composite",
) -> Rollup:
    """Fold a completed record into the by-model rollup."""
    return _fold_key(
        rollup, record.model_id, ModelBucket,
        lambda bucket: bucket.fold(record, base_level, composite_level),
    )


def fold_category_rollup(rollup: Rollup, record: TaskRecord) -> Rollup:
    """Fold a completed record into the by-category rollup."""
    return _fold_key(
        rollup, record.task_category, CategoryBucket,
        lambda bucket: bucket.fold(record),
    )


def fold_level_rollup(rollup: Rollup, record: TaskRecord) -> Rollup:
    """Fold a completed record into the by-level rollup.

    Unclassified records leave the rollup untouched.
    """
    if not record.classification_level:
        return rollup
    return _fold_key(
        rollup, record.classification_level, LevelBucket,
        lambda bucket: bucket.fold(record),
    )
