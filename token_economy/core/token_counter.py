"""
Token counting and usage tracking.

Holds per-call token usage and the input/output split applied to estimates.
"""

from dataclasses import dataclass
from decimal import Decimal

# Estimates are split 70% input / 30% output before pricing.
INPUT_SHARE = Decimal("0.7")
OUTPUT_SHARE = Decimal("0.3")


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Used both for pre-call estimates and post-call actuals.
    """
    input_tokens: int
    output_tokens: int

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens must be >= 0")
        if self.output_tokens < 0:
            raise ValueError("output_tokens must be >= 0")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input_tokens + self.output_tokens


def split_estimate(estimated_tokens: int) -> TokenUsage:
    """Split a total token estimate into input and output shares.

    Each share is floored, so the parts may sum to slightly less than the
    estimate.

    Args:
        estimated_tokens: Estimated total tokens for the task

    Returns:
        TokenUsage with the 70/30 split applied

    Raises:
        ValueError: If the estimate is negative
    """
    if estimated_tokens < 0:
        raise ValueError("estimated_tokens must be >= 0")
    total = Decimal(int(estimated_tokens))
    return TokenUsage(
        input_tokens=int(total * INPUT_SHARE),
        output_tokens=int(total * OUTPUT_SHARE),
    )
