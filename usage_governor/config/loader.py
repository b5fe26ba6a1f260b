"""
Configuration management and loading.

Loads pricing overrides, limit thresholds and hierarchy weights from YAML.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..core.analytics import (
    DEFAULT_MATURITY_TASKS,
    DEFAULT_MAX_SESSION_COST,
    DEFAULT_MAX_TASK_COST,
    DEFAULT_WARNING_RATIO,
)
from ..core.hierarchy import DEFAULT_HIERARCHY_CONFIG, HierarchyConfig
from ..core.pricing import DEFAULT_PRICING_TABLE, PricingEntry, PricingTable
from ..storage.registry import SessionRegistry


@dataclass(frozen=True)
class LimitsConfig:
    """Soft cost limits used for warnings."""
    max_session_cost: Decimal = DEFAULT_MAX_SESSION_COST
    max_task_cost: Decimal = DEFAULT_MAX_TASK_COST
    warning_ratio: Decimal = DEFAULT_WARNING_RATIO

    def __post_init__(self):
        """Validate limit values are positive."""
        if self.max_session_cost <= 0:
            raise ValueError("max_session_cost must be > 0")
        if self.max_task_cost <= 0:
            raise ValueError("max_task_cost must be > 0")
        if not 0 < self.warning_ratio <= 1:
            raise ValueError("warning_ratio must be in (0, 1]")


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    pricing: PricingTable = DEFAULT_PRICING_TABLE
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    hierarchy: HierarchyConfig = DEFAULT_HIERARCHY_CONFIG
    maturity_tasks: int = DEFAULT_MATURITY_TASKS

    def __post_init__(self):
        if self.maturity_tasks <= 0:
            raise ValueError("maturity_tasks must be > 0")

    def create_registry(self) -> SessionRegistry:
        """Create a session registry bound to this configuration."""
        return SessionRegistry(pricing=self.pricing, hierarchy_config=self.hierarchy)


def load_engine_config(path: str) -> EngineConfig:
    """Load and validate engine configuration from a YAML file.

    Every section is optional; missing values keep their defaults. Unknown
    keys are rejected so typos cannot silently fall back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated EngineConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Engine config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return EngineConfig()
    return parse_engine_config(raw_config)


def parse_engine_config(raw_config: Any) -> EngineConfig:
    """Validate an already-parsed configuration mapping."""
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'pricing', 'limits', 'hierarchy', 'projection'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    pricing = DEFAULT_PRICING_TABLE
    if 'pricing' in raw_config:
        pricing = _parse_pricing(_section(raw_config, 'pricing'))

    limits = LimitsConfig()
    if 'limits' in raw_config:
        limits = _parse_limits(_section(raw_config, 'limits'))

    hierarchy = DEFAULT_HIERARCHY_CONFIG
    if 'hierarchy' in raw_config:
        hierarchy = _parse_hierarchy(_section(raw_config, 'hierarchy'))

    maturity_tasks = DEFAULT_MATURITY_TASKS
    if 'projection' in raw_config:
        projection = _section(raw_config, 'projection')
        _reject_unknown(projection, {'maturity_tasks'}, 'projection')
        if 'maturity_tasks' in projection:
            value = projection['maturity_tasks']
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError("'maturity_tasks' in projection must be a positive integer")
            maturity_tasks = value

    return EngineConfig(
        pricing=pricing,
        limits=limits,
        hierarchy=hierarchy,
        maturity_tasks=maturity_tasks,
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config[name]
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _reject_unknown(data: Dict, allowed_keys: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_decimal(value: Any, key: str, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{key}' in {path} must be a number")
    try:
        # str() keeps YAML floats like 0.15 exact
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{key}' in {path} must be a number")


def _parse_pricing(data: Dict) -> PricingTable:
    """Parse pricing overrides on top of the default table.

    Args:
        data: Pricing section

    Returns:
        PricingTable with overrides applied

    Raises:
        ValueError: If the pricing section is invalid
    """
    _reject_unknown(data, {'default_model', 'models'}, 'pricing')

    models = data.get('models', {})
    if not isinstance(models, dict):
        raise ValueError("'pricing.models' must be a dictionary")

    overrides = {}
    for model_name, entry_data in models.items():
        path = f"pricing.models.{model_name}"
        if not isinstance(entry_data, dict):
            raise ValueError(f"Model '{model_name}' must be a dictionary")
        _reject_unknown(
            entry_data,
            {'input_rate_per_million', 'output_rate_per_million', 'max_tokens'},
            path,
        )
        for key in ('input_rate_per_million', 'output_rate_per_million'):
            if key not in entry_data:
                raise ValueError(f"Missing required '{key}' in {path}")

        max_tokens = entry_data.get('max_tokens', 128000)
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            raise ValueError(f"'max_tokens' in {path} must be an integer")

        overrides[str(model_name)] = PricingEntry(
            input_rate_per_million=_parse_decimal(
                entry_data['input_rate_per_million'], 'input_rate_per_million', path
            ),
            output_rate_per_million=_parse_decimal(
                entry_data['output_rate_per_million'], 'output_rate_per_million', path
            ),
            max_tokens=max_tokens,
        )

    default_model = data.get('default_model')
    if default_model is not None and not isinstance(default_model, str):
        raise ValueError("'pricing.default_model' must be a string")

    return DEFAULT_PRICING_TABLE.with_overrides(overrides, default_model)


def _parse_limits(data: Dict) -> LimitsConfig:
    allowed_keys = {'max_session_cost', 'max_task_cost', 'warning_ratio'}
    _reject_unknown(data, allowed_keys, 'limits')
    values = {
        key: _parse_decimal(data[key], key, 'limits')
        for key in allowed_keys
        if key in data
    }
    return LimitsConfig(**values)


def _parse_hierarchy(data: Dict) -> HierarchyConfig:
    _reject_unknown(
        data,
        {
            'base_level',
            'composite_level',
            'base_reusability_weight',
            'ratio_weight',
            'composite_simplicity_weight',
        },
        'hierarchy',
    )
    values = {}
    for key in ('base_level', 'composite_level'):
        if key in data:
            if not isinstance(data[key], str) or not data[key]:
                raise ValueError(f"'{key}' in hierarchy must be a non-empty string")
            values[key] = data[key]
    for key in ('base_reusability_weight', 'ratio_weight', 'composite_simplicity_weight'):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{key}' in hierarchy must be a number")
            values[key] = float(value)
    return HierarchyConfig(**values)
