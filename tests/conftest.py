"""Shared fixtures for token_economy tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from token_economy.core.pricing import ModelPricing, PricingTable, PRICING_TABLE


class FakeClock:
    """Settable clock for period rollover tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def flat_pricing():
    """Pricing where 1000 estimated tokens cost exactly $1.00."""
    return PRICING_TABLE.with_overrides({
        "test/flat": ModelPricing(Decimal("1"), Decimal("1"))
    })
