"""
Error taxonomy for routing and admission control.

Routing errors are fatal to the current task; BudgetDenied is recoverable by
the caller; recovery and persistence failures never leave the budget gate.
"""

from typing import Any


class TokenEconomyError(Exception):
    """Base class for all token_economy errors."""


class RoutingError(TokenEconomyError):
    """Raised when no resource can be selected for a task."""


class AttemptsExceeded(RoutingError):
    """Raised when the attempt counter reaches the policy ceiling."""
    def __init__(self, category: str, attempt_number: int, max_attempts: int):
        super().__init__(
            f"Max attempts ({max_attempts}) exceeded for task type: {category} "
            f"(attempt {attempt_number})"
        )
        self.category = category
        self.attempt_number = attempt_number
        self.max_attempts = max_attempts


class UnconfiguredTier(RoutingError):
    """Raised when a tier has no resource identifier mapped to it."""
    def __init__(self, tier: str):
        super().__init__(f"No model configured for tier: {tier}")
        self.tier = tier


class BudgetDenied(TokenEconomyError):
    """Raised when an admission check fails one of its limits."""
    def __init__(self, result: Any):
        super().__init__(result.reason)
        self.result = result


class RecoveryReadFailure(TokenEconomyError):
    """Raised when the audit sink cannot be read during state recovery."""


class PersistFailure(TokenEconomyError):
    """Raised when the budget snapshot cannot be written."""
