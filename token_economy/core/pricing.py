"""
Pricing calculations and rate management.

Handles cost computations for the priced models routing can target.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_UP
from typing import Dict, Mapping

from .token_counter import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1k: Decimal  # Cost per 1K input tokens
    output_cost_per_1k: Decimal  # Cost per 1K output tokens


FREE_PRICING = ModelPricing(
    input_cost_per_1k=Decimal("0"),
    output_cost_per_1k=Decimal("0")
)


@dataclass(frozen=True)
class PricingTable:
    """Pricing table keyed by resource identifier ("provider/model")."""
    prices: Dict[str, ModelPricing] = field(default_factory=dict)

    def has(self, resource_id: str) -> bool:
        """Whether the table carries an explicit entry for a resource."""
        return resource_id in self.prices

    def get_pricing(self, resource_id: str) -> ModelPricing:
        """Get pricing for a specific resource.

        Unknown resources price at zero: absent pricing means free or
        unknown, never an error.

        Args:
            resource_id: Resource identifier

        Returns:
            ModelPricing for the resource
        """
        return self.prices.get(resource_id, FREE_PRICING)

    def with_overrides(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with entries added or replaced."""
        merged = dict(self.prices)
        merged.update(overrides)
        return PricingTable(merged)


PRICING_TABLE = PricingTable({
    "openai/gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("0.0025"),
        output_cost_per_1k=Decimal("0.01")
    ),
    "anthropic/claude-sonnet-4-5": ModelPricing(
        input_cost_per_1k=Decimal("0.003"),
        output_cost_per_1k=Decimal("0.015")
    ),
    "anthropic/claude-opus-4-5": ModelPricing(
        input_cost_per_1k=Decimal("0.015"),
        output_cost_per_1k=Decimal("0.075")
    ),
    "anthropic/claude-haiku-4": ModelPricing(
        input_cost_per_1k=Decimal("0.00025"),
        output_cost_per_1k=Decimal("0.00125")
    ),
    # Free tier
    "google/gemini-2.0-flash-exp": FREE_PRICING,
})


def calculate_cost(
    resource_id: str,
    usage: TokenUsage,
    table: PricingTable = PRICING_TABLE
) -> float:
    """Calculate total cost for resource usage with conservative rounding.

    Args:
        resource_id: Resource identifier
        usage: Token usage data
        table: Pricing table to price against

    Returns:
        Total cost in USD rounded UP to 6 decimal places
    """
    pricing = table.get_pricing(resource_id)

    # (tokens / 1000) * cost_per_1k
    input_cost = (Decimal(usage.input_tokens) / Decimal("1000")) * pricing.input_cost_per_1k
    output_cost = (Decimal(usage.output_tokens) / Decimal("1000")) * pricing.output_cost_per_1k

    total_cost = input_cost + output_cost
    rounded_cost = total_cost.quantize(Decimal("0.000001"), rounding=ROUND_UP)

    return float(rounded_cost)
