"""
Unit tests for pricing calculations.

Tests cost accuracy, exact decimal arithmetic, and default-model fallback.
"""

import logging
from decimal import Decimal

import pytest

from usage_governor.core.pricing import (
    DEFAULT_PRICING_TABLE,
    PricingEntry,
    PricingTable,
    calculate_cost,
)
from usage_governor.core.token_counter import TokenUsage


def make_table():
    """Create a table with one model at $5/M input and $15/M output."""
    return PricingTable(
        entries={
            "model-a": PricingEntry(
                input_rate_per_million=Decimal("5"),
                output_rate_per_million=Decimal("15"),
            ),
            "model-b": PricingEntry(
                input_rate_per_million=Decimal("0.15"),
                output_rate_per_million=Decimal("0.60"),
            ),
        },
        default_model="model-a",
    )


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        """Verify total_tokens is computed correctly."""
        usage = TokenUsage(input_tokens=100, output_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_tokens(self):
        """Verify zero token handling."""
        usage = TokenUsage(input_tokens=0, output_tokens=0)
        assert usage.total_tokens == 0

    def test_negative_tokens_rejected(self):
        """Verify negative counts are rejected."""
        with pytest.raises(ValueError, match="input_tokens cannot be negative"):
            TokenUsage(input_tokens=-1, output_tokens=0)

    def test_non_integer_tokens_rejected(self):
        """Verify float counts are rejected."""
        with pytest.raises(ValueError, match="output_tokens must be an integer"):
            TokenUsage(input_tokens=1, output_tokens=2.5)


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        """Verify pricing retrieval for supported models."""
        pricing = DEFAULT_PRICING_TABLE.get_pricing("gpt-4o")
        assert pricing.input_rate_per_million == Decimal("5.00")
        assert pricing.output_rate_per_million == Decimal("15.00")
        assert pricing.max_tokens == 128000

    def test_unsupported_model_raises_error(self):
        """Verify strict lookup errors for unknown models."""
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            DEFAULT_PRICING_TABLE.get_pricing("unknown-model")

    def test_resolve_known_model(self):
        """Verify resolve returns the model's own entry."""
        entry, used_fallback = make_table().resolve("model-b")
        assert entry.input_rate_per_million == Decimal("0.15")
        assert used_fallback is False

    def test_resolve_unknown_model_falls_back(self, caplog):
        """Verify unknown models resolve to the default entry and log it."""
        with caplog.at_level(logging.WARNING, logger="usage_governor.core.pricing"):
            entry, used_fallback = make_table().resolve("mystery")

        assert used_fallback is True
        assert entry.input_rate_per_million == Decimal("5")
        assert "mystery" in caplog.text

    def test_default_model_must_exist(self):
        """Verify a table without its default entry is rejected."""
        with pytest.raises(ValueError, match="Default model"):
            PricingTable(entries={}, default_model="gpt-4o")

    def test_negative_rate_rejected(self):
        """Verify negative rates are rejected."""
        with pytest.raises(ValueError, match="input_rate_per_million cannot be negative"):
            PricingEntry(
                input_rate_per_million=Decimal("-1"),
                output_rate_per_million=Decimal("1"),
            )

    def test_with_overrides(self):
        """Verify overrides replace and extend entries without modifying the base table."""
        table = make_table().with_overrides({
            "model-a": PricingEntry(Decimal("1"), Decimal("2")),
            "model-c": PricingEntry(Decimal("3"), Decimal("4")),
        })

        assert table.get_pricing("model-a").input_rate_per_million == Decimal("1")
        assert "model-c" in table
        assert make_table().get_pricing("model-a").input_rate_per_million == Decimal("5")


class TestCostCalculation:
    """Test cost calculation accuracy."""

    def test_reference_scenario(self):
        """Verify 1000 input / 500 output tokens at $5/$15 per million."""
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        cost = calculate_cost("model-a", usage, make_table())
        # Input: 1000/1M * $5 = $0.005
        # Output: 500/1M * $15 = $0.0075
        assert cost.input_cost == Decimal("0.005")
        assert cost.output_cost == Decimal("0.0075")
        assert cost.total_cost == Decimal("0.0125")
        assert cost.used_fallback is False

    def test_no_rounding_applied(self):
        """Verify tiny costs are kept exactly."""
        usage = TokenUsage(input_tokens=1, output_tokens=1)
        cost = calculate_cost("model-b", usage, make_table())
        # Input: 1/1M * $0.15 = $0.00000015
        # Output: 1/1M * $0.60 = $0.0000006
        assert cost.total_cost == Decimal("0.00000075")

    def test_large_token_counts(self):
        """Verify calculation with very large token counts."""
        usage = TokenUsage(input_tokens=2000000, output_tokens=1000000)
        cost = calculate_cost("gpt-4o", usage)
        # Input: 2 * $5 = $10, Output: 1 * $15 = $15
        assert cost.total_cost == Decimal("25")

    def test_zero_tokens_cost(self):
        """Verify cost calculation with zero tokens."""
        cost = calculate_cost("gpt-4o", TokenUsage(input_tokens=0, output_tokens=0))
        assert cost.total_cost == 0

    def test_unknown_model_uses_default_rates(self):
        """Verify unknown models are priced at the default rates and flagged."""
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        cost = calculate_cost("unknown-model", usage, make_table())
        assert cost.total_cost == Decimal("0.0125")
        assert cost.used_fallback is True
