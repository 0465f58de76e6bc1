"""
Unit tests for model tier routing and escalation.
"""

import pytest

from token_economy.config.loader import (
    DEFAULT_ROUTING_POLICY,
    EscalationTriggers,
    RoutingPolicy,
)
from token_economy.core.errors import AttemptsExceeded, RoutingError, UnconfiguredTier
from token_economy.core.models import (
    FailureDescriptor,
    FailureKind,
    ResourceTier,
    TaskCategory,
)
from token_economy.core.router import (
    ladder_index,
    parse_resource_id,
    route,
    select_resource,
    should_escalate,
    tier_for_resource,
    validate_policy,
)

CHEAP = "openai/gpt-4o"
MID = "anthropic/claude-sonnet-4-5"
HIGH = "anthropic/claude-opus-4-5"

VALIDATION = FailureDescriptor(FailureKind.VALIDATION)


class TestBaseRouting:
    """Test first-attempt routing under the default policy."""

    @pytest.mark.parametrize("category, expected", [
        (TaskCategory.FILE_OPS, CHEAP),
        (TaskCategory.EXTRACT, CHEAP),
        (TaskCategory.SUMMARIZE, CHEAP),
        (TaskCategory.WRITE, MID),
        (TaskCategory.CODE, MID),
        (TaskCategory.STRATEGY, HIGH),
    ])
    def test_default_routes(self, category, expected):
        assert select_resource(category, 0, None, DEFAULT_ROUTING_POLICY) == expected

    def test_string_category_accepted(self):
        assert select_resource("code") == MID

    def test_category_missing_from_routes_defaults_to_mid(self):
        """Verify an unrouted category falls back to the mid tier."""
        routes = dict(DEFAULT_ROUTING_POLICY.routes)
        del routes[TaskCategory.EXTRACT]
        policy = RoutingPolicy(routes=routes)
        assert select_resource(TaskCategory.EXTRACT, 0, None, policy) == MID

    def test_unknown_category_name_defaults_to_mid(self):
        """A category name the classifier never produces still routes."""
        decision = route("translate")
        assert decision.resource_id == MID
        assert decision.category == "translate"

    def test_unknown_category_name_respects_attempt_limit(self):
        with pytest.raises(AttemptsExceeded, match="task type: translate"):
            select_resource("translate", 3)


class TestHeartbeat:
    """Test heartbeat tasks never get a resource."""

    @pytest.mark.parametrize("attempt", [0, 1, 2, 3, 10, 100])
    @pytest.mark.parametrize("failure", [
        None,
        VALIDATION,
        FailureDescriptor(FailureKind.TOOL_ERROR, 5),
        {"type": "uncertainty"},
        "garbage",
    ])
    def test_heartbeat_returns_none(self, attempt, failure):
        assert select_resource(TaskCategory.HEARTBEAT, attempt, failure) is None

    def test_category_routed_to_none(self):
        """Any category routed to the none tier is treated like a heartbeat."""
        routes = dict(DEFAULT_ROUTING_POLICY.routes)
        routes[TaskCategory.FILE_OPS] = ResourceTier.NONE
        policy = RoutingPolicy(routes=routes)
        assert select_resource(TaskCategory.FILE_OPS, 7, VALIDATION, policy) is None

    @pytest.mark.parametrize("attempt", [0, 1, 5])
    def test_heartbeat_ignores_routed_tier(self, attempt):
        """Heartbeats get no resource even when a policy routes them to a model."""
        routes = dict(DEFAULT_ROUTING_POLICY.routes)
        routes[TaskCategory.HEARTBEAT] = ResourceTier.CHEAP
        policy = RoutingPolicy(routes=routes)
        assert select_resource(TaskCategory.HEARTBEAT, attempt, VALIDATION, policy) is None

    def test_heartbeat_missing_from_routes(self):
        routes = dict(DEFAULT_ROUTING_POLICY.routes)
        del routes[TaskCategory.HEARTBEAT]
        policy = RoutingPolicy(routes=routes)

        decision = route(TaskCategory.HEARTBEAT, 5, VALIDATION, policy)
        assert decision.resource_id is None
        assert decision.effective_tier == ResourceTier.NONE
        assert not decision.needs_resource


class TestAttemptLimit:
    """Test the attempt ceiling."""

    def test_last_allowed_attempt(self):
        assert select_resource(TaskCategory.CODE, 2, None) == MID

    def test_attempt_at_ceiling_raises(self):
        with pytest.raises(AttemptsExceeded) as excinfo:
            select_resource(TaskCategory.CODE, 3, VALIDATION)
        assert excinfo.value.max_attempts == 3
        assert "Max attempts (3) exceeded" in str(excinfo.value)

    def test_attempts_exceeded_is_a_routing_error(self):
        with pytest.raises(RoutingError):
            select_resource(TaskCategory.WRITE, 99, None)

    def test_custom_ceiling(self):
        policy = RoutingPolicy(max_attempts=1)
        with pytest.raises(AttemptsExceeded):
            select_resource(TaskCategory.WRITE, 1, None, policy)


class TestEscalation:
    """Test failure-driven escalation."""

    def test_no_escalation_on_first_attempt(self):
        """Escalation only applies to retries."""
        assert select_resource(TaskCategory.FILE_OPS, 0, VALIDATION) == CHEAP

    def test_retry_without_failure_keeps_base_tier(self):
        assert select_resource(TaskCategory.FILE_OPS, 1, None) == CHEAP

    def test_escalation_scales_with_attempt(self):
        """A cheap task jumps attempt_number rungs, not one per retry."""
        assert select_resource(TaskCategory.FILE_OPS, 1, VALIDATION) == MID
        assert select_resource(TaskCategory.FILE_OPS, 2, VALIDATION) == HIGH

    def test_escalation_saturates_at_top(self):
        assert select_resource(TaskCategory.CODE, 2, VALIDATION) == HIGH
        decision = route(TaskCategory.STRATEGY, 1, VALIDATION)
        assert decision.resource_id == HIGH
        assert not decision.escalated

    def test_single_tool_error_does_not_escalate(self):
        failure = FailureDescriptor(FailureKind.TOOL_ERROR, 1)
        assert select_resource(TaskCategory.FILE_OPS, 1, failure) == CHEAP

    def test_repeated_tool_error_escalates(self):
        failure = FailureDescriptor(FailureKind.TOOL_ERROR, 2)
        assert select_resource(TaskCategory.FILE_OPS, 1, failure) == MID

    def test_disabled_trigger_does_not_escalate(self):
        policy = RoutingPolicy(
            escalation_triggers=EscalationTriggers(validation_failure=False)
        )
        assert select_resource(TaskCategory.FILE_OPS, 2, VALIDATION, policy) == CHEAP

    def test_base_tier_off_ladder_counts_as_bottom(self):
        policy = RoutingPolicy(escalation=(ResourceTier.MID, ResourceTier.HIGH))
        assert ladder_index(ResourceTier.CHEAP, policy) == 0
        assert select_resource(TaskCategory.FILE_OPS, 1, VALIDATION, policy) == HIGH

    @pytest.mark.parametrize("category", [
        TaskCategory.FILE_OPS, TaskCategory.WRITE, TaskCategory.STRATEGY
    ])
    @pytest.mark.parametrize("failure", [
        VALIDATION,
        FailureDescriptor(FailureKind.UNCERTAINTY),
        FailureDescriptor(FailureKind.TOOL_ERROR, 3),
    ])
    def test_monotonic(self, category, failure):
        """Effective tier never drops as attempts increase."""
        policy = RoutingPolicy(max_attempts=6)
        indices = [
            ladder_index(route(category, attempt, failure, policy).effective_tier, policy)
            for attempt in range(6)
        ]
        assert indices == sorted(indices)
        assert indices[-1] == len(policy.escalation) - 1

    def test_route_decision_reports_escalation(self):
        decision = route(TaskCategory.FILE_OPS, 1, {"type": "validation"})
        assert decision.base_tier == ResourceTier.CHEAP
        assert decision.effective_tier == ResourceTier.MID
        assert decision.escalated
        assert decision.needs_resource


class TestShouldEscalate:
    """Truth table for the escalation predicate."""

    def test_validation(self):
        assert should_escalate(FailureDescriptor(FailureKind.VALIDATION)) is True

    def test_tool_error_repeated(self):
        assert should_escalate(FailureDescriptor(FailureKind.TOOL_ERROR, 2)) is True

    def test_tool_error_once(self):
        assert should_escalate(FailureDescriptor(FailureKind.TOOL_ERROR, 1)) is False

    def test_uncertainty(self):
        assert should_escalate(FailureDescriptor(FailureKind.UNCERTAINTY)) is True

    def test_absent(self):
        assert should_escalate(None) is False

    def test_mapping_input(self):
        assert should_escalate({"type": "tool_error", "count": 2}) is True
        assert should_escalate({"kind": "tool_error"}) is False

    @pytest.mark.parametrize("failure", [
        "validation",
        42,
        {},
        {"type": "timeout"},
        {"type": None},
        {"type": "tool_error", "count": "two"},
    ])
    def test_malformed(self, failure):
        assert should_escalate(failure) is False

    def test_each_trigger_can_be_disabled(self):
        policy = RoutingPolicy(escalation_triggers=EscalationTriggers(
            validation_failure=False,
            tool_error_repeated=False,
            uncertainty_signal=False,
        ))
        assert should_escalate(FailureDescriptor(FailureKind.VALIDATION), policy) is False
        assert should_escalate(FailureDescriptor(FailureKind.TOOL_ERROR, 5), policy) is False
        assert should_escalate(FailureDescriptor(FailureKind.UNCERTAINTY), policy) is False


class TestPolicyErrors:
    """Test configuration defects."""

    def test_unconfigured_tier_raises(self):
        policy = RoutingPolicy(defaults={
            ResourceTier.CHEAP: CHEAP,
            ResourceTier.MID: MID,
        })
        with pytest.raises(UnconfiguredTier, match="No model configured for tier: high"):
            select_resource(TaskCategory.STRATEGY, 0, None, policy)

    def test_validate_policy_detects_missing_tier(self):
        policy = RoutingPolicy(defaults={ResourceTier.CHEAP: CHEAP})
        with pytest.raises(UnconfiguredTier):
            validate_policy(policy)

    def test_validate_default_policy(self):
        validate_policy(DEFAULT_ROUTING_POLICY)

    def test_invalid_policy_shapes(self):
        with pytest.raises(ValueError, match="max_attempts"):
            RoutingPolicy(max_attempts=0)
        with pytest.raises(ValueError, match="must not be empty"):
            RoutingPolicy(escalation=())
        with pytest.raises(ValueError, match="'none' tier"):
            RoutingPolicy(escalation=(ResourceTier.NONE, ResourceTier.HIGH))


class TestResourceHelpers:
    """Test resource identifier helpers."""

    def test_parse_resource_id(self):
        assert parse_resource_id("openai/gpt-4o") == ("openai", "gpt-4o")

    @pytest.mark.parametrize("value", [None, "", "gpt-4o", "a/b/c", "/model", 12])
    def test_parse_malformed_resource_id(self, value):
        assert parse_resource_id(value) is None

    def test_tier_for_resource(self):
        assert tier_for_resource(HIGH) == ResourceTier.HIGH
        assert tier_for_resource("unknown/model") is None
