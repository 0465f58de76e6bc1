"""
Model tier routing with failure-driven escalation.

Maps a task category to a resource identifier under a RoutingPolicy.
Retried tasks may escalate up the policy's tier ladder when the previous
attempt failed with a signal the policy treats as an escalation trigger.

Escalation is aggressive: the target index is ``base + attempt_number``,
so a cheap-tier task escalating on attempt 2 jumps straight to the third
rung rather than climbing one rung per retry.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union, Mapping

from token_economy.config.loader import DEFAULT_ROUTING_POLICY, RoutingPolicy
from token_economy.observability import get_logger

from .errors import AttemptsExceeded, UnconfiguredTier
from .models import FailureDescriptor, FailureKind, ResourceTier, TaskCategory
from .pricing import PRICING_TABLE, PricingTable

log = get_logger("router")

FailureInput = Union[FailureDescriptor, Mapping[str, Any], None]


@dataclass(frozen=True)
class RouteDecision:
    """Full outcome of a routing decision, for callers that log or audit it."""
    category: Union[TaskCategory, str]
    attempt_number: int
    base_tier: ResourceTier
    effective_tier: ResourceTier
    resource_id: Optional[str]
    escalated: bool

    @property
    def needs_resource(self) -> bool:
        return self.resource_id is not None


def should_escalate(last_failure: FailureInput, policy: RoutingPolicy = DEFAULT_ROUTING_POLICY) -> bool:
    """Decide whether the previous failure warrants escalation.

    Args:
        last_failure: Failure on the previous attempt, as a FailureDescriptor
            or a mapping with ``kind``/``type`` and optional ``count``
        policy: Routing policy whose escalation triggers apply

    Returns:
        True if the failure kind is an enabled trigger (tool errors only
        once they have occurred at least twice); False for absent or
        malformed input
    """
    failure = FailureDescriptor.from_dict(last_failure)
    if failure is None:
        return False

    triggers = policy.escalation_triggers
    if failure.kind == FailureKind.VALIDATION and triggers.validation_failure:
        return True
    if (failure.kind == FailureKind.TOOL_ERROR
            and triggers.tool_error_repeated
            and failure.occurrence_count >= 2):
        return True
    if failure.kind == FailureKind.UNCERTAINTY and triggers.uncertainty_signal:
        return True
    return False


def ladder_index(tier: ResourceTier, policy: RoutingPolicy = DEFAULT_ROUTING_POLICY) -> int:
    """Position of a tier on the escalation ladder; tiers off the ladder count as 0."""
    try:
        return policy.escalation.index(tier)
    except ValueError:
        return 0


def route(
    category: TaskCategory,
    attempt_number: int = 0,
    last_failure: FailureInput = None,
    policy: RoutingPolicy = DEFAULT_ROUTING_POLICY
) -> RouteDecision:
    """Route a task and report how the resource was chosen.

    ``category`` may be a TaskCategory or its string value. Names outside
    the known categories route at the policy's default, the mid tier.

    Raises:
        AttemptsExceeded: If attempt_number has reached policy.max_attempts
        UnconfiguredTier: If the effective tier has no resource mapped
    """
    try:
        category = TaskCategory(category)
    except ValueError:
        log.warning("router.unknown_category", category=str(category))
    category_name = getattr(category, "value", str(category))
    base_tier = policy.routes.get(category, ResourceTier.MID)

    # Heartbeats never consume a model, regardless of attempts, failures or policy.
    if category == TaskCategory.HEARTBEAT or base_tier == ResourceTier.NONE:
        return RouteDecision(
            category=category,
            attempt_number=attempt_number,
            base_tier=ResourceTier.NONE,
            effective_tier=ResourceTier.NONE,
            resource_id=None,
            escalated=False,
        )

    if attempt_number >= policy.max_attempts:
        raise AttemptsExceeded(category_name, attempt_number, policy.max_attempts)

    effective_tier = base_tier
    if attempt_number > 0 and should_escalate(last_failure, policy):
        target_index = min(
            ladder_index(base_tier, policy) + attempt_number,
            len(policy.escalation) - 1
        )
        effective_tier = policy.escalation[target_index]

    resource_id = policy.defaults.get(effective_tier)
    if not resource_id:
        raise UnconfiguredTier(effective_tier.value)

    escalated = effective_tier != base_tier
    if escalated:
        log.info(
            "router.escalated",
            category=category_name,
            attempt=attempt_number,
            from_tier=base_tier.value,
            to_tier=effective_tier.value,
            resource=resource_id,
        )

    return RouteDecision(
        category=category,
        attempt_number=attempt_number,
        base_tier=base_tier,
        effective_tier=effective_tier,
        resource_id=resource_id,
        escalated=escalated,
    )


def select_resource(
    category: TaskCategory,
    attempt_number: int = 0,
    last_failure: FailureInput = None,
    policy: RoutingPolicy = DEFAULT_ROUTING_POLICY
) -> Optional[str]:
    """Select the resource identifier for a task attempt.

    Args:
        category: Task category from the classifier
        attempt_number: Current attempt (0-indexed)
        last_failure: Failure on the previous attempt, if any
        policy: Routing policy

    Returns:
        Resource identifier such as "openai/gpt-4o", or None when the
        category needs no resource

    Raises:
        AttemptsExceeded: If attempt_number has reached policy.max_attempts
        UnconfiguredTier: If the effective tier has no resource mapped
    """
    return route(category, attempt_number, last_failure, policy).resource_id


def parse_resource_id(resource_id: Any) -> Optional[Tuple[str, str]]:
    """Split "provider/model" into its parts, or None if malformed."""
    if not isinstance(resource_id, str):
        return None
    parts = resource_id.split("/")
    if len(parts) != 2:
        return None
    provider, model = parts[0].strip(), parts[1].strip()
    if not provider or not model:
        return None
    return provider, model


def tier_for_resource(resource_id: str, policy: RoutingPolicy = DEFAULT_ROUTING_POLICY) -> Optional[ResourceTier]:
    """Tier whose default resource is resource_id, if any."""
    for tier, mapped in policy.defaults.items():
        if mapped == resource_id:
            return tier
    return None


def validate_policy(policy: RoutingPolicy, pricing: PricingTable = PRICING_TABLE) -> None:
    """Check a policy statically at startup.

    Raises:
        UnconfiguredTier: If a routed or ladder tier has no resource mapped
    """
    referenced = set(policy.escalation) | set(policy.routes.values())
    referenced.discard(ResourceTier.NONE)
    for tier in sorted(referenced, key=lambda t: t.value):
        if not policy.defaults.get(tier):
            raise UnconfiguredTier(tier.value)

    for tier, resource_id in policy.defaults.items():
        if parse_resource_id(resource_id) is None:
            log.warning("router.malformed_resource_id", tier=tier.value, resource=resource_id)
        if not pricing.has(resource_id):
            log.warning("router.unpriced_resource", tier=tier.value, resource=resource_id)
