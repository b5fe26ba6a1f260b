"""
Classification-hierarchy health tracking.

Maintains artifact counts, score averages and cost efficiency per
classification level, and combines them into a single reusability index.
Every update is a pure function of the prior health value and one newly
completed task.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .task import TaskRecord


def _empty() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class HierarchyConfig:
    """Level names and reusability index weights.

    The default weights (0.7 / 3 / 0.3) are empirical and have no documented
    derivation. They are kept configurable pending product confirmation.
    """
    base_level: str = "base"
    composite_level: str = "composite"
    base_reusability_weight: float = 0.7
    ratio_weight: float = 3.0
    composite_simplicity_weight: float = 0.3

    def __post_init__(self):
        if not self.base_level or not self.composite_level:
            raise ValueError("base_level and composite_level are required")
        if self.base_level == self.composite_level:
            raise ValueError("base_level and composite_level must differ")


DEFAULT_HIERARCHY_CONFIG = HierarchyConfig()


@dataclass(frozen=True)
class LevelCostEfficiency:
    """Cost per produced artifact for one level."""
    total_cost: Decimal = Decimal("0")
    total_artifacts: int = 0

    @property
    def avg_cost_per_artifact(self) -> Decimal:
        if self.total_artifacts == 0:
            return Decimal("0")
        return self.total_cost / self.total_artifacts


@dataclass(frozen=True)
class LibraryGrowthPoint:
    """Base-level library size after one producing task."""
    timestamp: datetime
    new_artifacts: int
    total_artifacts: int


@dataclass(frozen=True)
class HierarchyHealth:
    """Session-scoped hierarchy health derived from completed tasks.

    Score averages are weighted by the level's full artifact count. A task
    without a score grows the count but leaves the average as it was.
    """
    artifacts_by_level: Mapping[str, int] = field(default_factory=_empty)
    avg_reusability_by_level: Mapping[str, float] = field(default_factory=_empty)
    avg_complexity_by_level: Mapping[str, float] = field(default_factory=_empty)
    base_artifacts: int = 0
    composite_artifacts: int = 0
    base_to_composite_ratio: float = 0.0
    cost_efficiency_by_level: Mapping[str, LevelCostEfficiency] = field(default_factory=_empty)
    reusability_index: float = 0.0
    base_library_growth: Tuple[LibraryGrowthPoint, ...] = ()
    config: HierarchyConfig = DEFAULT_HIERARCHY_CONFIG

    @property
    def avg_base_reusability(self) -> float:
        return self.avg_reusability_by_level.get(self.config.base_level, 0.0)

    @property
    def avg_composite_complexity(self) -> float:
        return self.avg_complexity_by_level.get(self.config.composite_level, 0.0)


def _weighted_mean(
    averages: Mapping[str, float],
    level: str,
    score: Optional[float],
    old_count: int,
    produced: int,
) -> Mapping[str, float]:
    """Fold ``score`` for ``produced`` new artifacts into the level's mean.

    ``old_count`` is the level's artifact count before this task.
    """
    if score is None:
        return averages
    old_avg = averages.get(level, 0.0)
    new_averages = dict(averages)
    new_averages[level] = (old_avg * old_count + score * produced) / (old_count + produced)
    return MappingProxyType(new_averages)


def compute_reusability_index(
    avg_base_reusability: float,
    base_to_composite_ratio: float,
    avg_composite_complexity: float,
    config: HierarchyConfig = DEFAULT_HIERARCHY_CONFIG,
) -> float:
    """Combine base reusability, base share and composite simplicity."""
    return (
        avg_base_reusability * config.base_reusability_weight
        + base_to_composite_ratio * config.ratio_weight
        + (10 - avg_composite_complexity) * config.composite_simplicity_weight
    )


def update_hierarchy_health(health: HierarchyHealth, record: TaskRecord) -> HierarchyHealth:
    """Fold one completed record into the hierarchy health.

    Only records with a classification level and at least one produced
    artifact participate; anything else returns ``health`` unchanged.
    """
    level = record.classification_level
    produced = record.metrics.artifact_count
    if not level or produced == 0:
        return health

    config = health.config

    previous_artifacts = health.artifacts_by_level.get(level, 0)
    artifacts_by_level = dict(health.artifacts_by_level)
    artifacts_by_level[level] = previous_artifacts + produced

    avg_reusability = _weighted_mean(
        health.avg_reusability_by_level,
        level,
        record.metrics.reusability_score,
        previous_artifacts,
        produced,
    )
    avg_complexity = _weighted_mean(
        health.avg_complexity_by_level,
        level,
        record.metrics.complexity_score,
        previous_artifacts,
        produced,
    )

    base_artifacts = artifacts_by_level.get(config.base_level, 0)
    composite_artifacts = artifacts_by_level.get(config.composite_level, 0)
    denominator = base_artifacts + composite_artifacts
    ratio = base_artifacts / denominator if denominator > 0 else 0.0

    efficiency = dict(health.cost_efficiency_by_level)
    previous = efficiency.get(level) or LevelCostEfficiency()
    efficiency[level] = LevelCostEfficiency(
        total_cost=previous.total_cost + record.total_cost,
        total_artifacts=previous.total_artifacts + produced,
    )

    growth = health.base_library_growth
    if level == config.base_level:
        growth = growth + (LibraryGrowthPoint(
            timestamp=record.completed_at,
            new_artifacts=produced,
            total_artifacts=base_artifacts,
        ),)

    index = compute_reusability_index(
        avg_reusability.get(config.base_level, 0.0),
        ratio,
        avg_complexity.get(config.composite_level, 0.0),
        config,
    )

    return replace(
        health,
        artifacts_by_level=MappingProxyType(artifacts_by_level),
        avg_reusability_by_level=avg_reusability,
        avg_complexity_by_level=avg_complexity,
        base_artifacts=base_artifacts,
        composite_artifacts=composite_artifacts,
        base_to_composite_ratio=ratio,
        cost_efficiency_by_level=MappingProxyType(efficiency),
        reusability_index=index,
        base_library_growth=growth,
    )
