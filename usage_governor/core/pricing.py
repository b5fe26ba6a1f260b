"""
Pricing calculations and rate management.

Handles per-million-token cost computations for priced model calls.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple

from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class PricingEntry:
    """Per-million-token pricing for a specific model."""
    input_rate_per_million: Decimal
    output_rate_per_million: Decimal
    max_tokens: int = 128000

    def __post_init__(self):
        """Validate rates are non-negative and the context size is positive."""
        if self.input_rate_per_million < 0:
            raise ValueError("input_rate_per_million cannot be negative")
        if self.output_rate_per_million < 0:
            raise ValueError("output_rate_per_million cannot be negative")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")


@dataclass(frozen=True)
class CostBreakdown:
    """Input, output and total cost of one priced call."""
    input_cost: Decimal
    output_cost: Decimal
    used_fallback: bool = False

    @property
    def total_cost(self) -> Decimal:
        return self.input_cost + self.output_cost


@dataclass(frozen=True)
class PricingTable:
    """Pricing table with a designated default entry for unknown models."""
    entries: Dict[str, PricingEntry]
    default_model: str

    def __post_init__(self):
        if self.default_model not in self.entries:
            raise ValueError(
                f"Default model {self.default_model!r} missing from pricing table"
            )

    def __contains__(self, model: str) -> bool:
        return model in self.entries

    def get_pricing(self, model: str) -> PricingEntry:
        """Get pricing for a specific model, without fallback.

        Raises:
            ValueError: If model is not in the table
        """
        if model not in self.entries:
            raise ValueError(f"Unsupported model: {model}")
        return self.entries[model]

    def resolve(self, model: str) -> Tuple[PricingEntry, bool]:
        """Resolve pricing for a model, falling back to the default entry.

        Args:
            model: Model identifier

        Returns:
            Tuple of (pricing entry, whether the default entry was substituted)
        """
        entry = self.entries.get(model)
        if entry is not None:
            return entry, False
        logger.warning(
            "No pricing for model %r, using %r rates", model, self.default_model
        )
        return self.entries[self.default_model], True

    def with_overrides(
        self,
        overrides: Mapping[str, PricingEntry],
        default_model: Optional[str] = None,
    ) -> "PricingTable":
        """Return a new table with entries added or replaced."""
        entries = dict(self.entries)
        entries.update(overrides)
        return PricingTable(entries, default_model or self.default_model)


# Default rates, USD per million tokens
DEFAULT_PRICING_TABLE = PricingTable(
    entries={
        "gpt-4o": PricingEntry(
            input_rate_per_million=Decimal("5.00"),
            output_rate_per_million=Decimal("15.00"),
            max_tokens=128000,
        ),
        "gpt-4o-mini": PricingEntry(
            input_rate_per_million=Decimal("0.15"),
            output_rate_per_million=Decimal("0.60"),
            max_tokens=128000,
        ),
        "o3-mini": PricingEntry(
            input_rate_per_million=Decimal("1.25"),
            output_rate_per_million=Decimal("5.00"),
            max_tokens=128000,
        ),
    },
    default_model="gpt-4o",
)


def calculate_cost(
    model: str,
    usage: TokenUsage,
    pricing: PricingTable = DEFAULT_PRICING_TABLE,
) -> CostBreakdown:
    """Calculate exact cost for model usage.

    No rounding is applied so session totals stay equal to the sum of their
    parts.

    Args:
        model: Model identifier
        usage: Token usage data
        pricing: Table to price against

    Returns:
        CostBreakdown with the substitution flag set if the model was unknown
    """
    entry, used_fallback = pricing.resolve(model)

    # tokens / 1M * rate
    input_cost = (Decimal(usage.input_tokens) / ONE_MILLION) * entry.input_rate_per_million
    output_cost = (Decimal(usage.output_tokens) / ONE_MILLION) * entry.output_rate_per_million

    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        used_fallback=used_fallback,
    )
