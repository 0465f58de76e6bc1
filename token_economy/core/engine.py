"""
End-to-end task planning.

Classifies a task, routes it to a resource, asks the budget gate for
admission, and after completion records spend and writes the audit record.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol

from token_economy.config.loader import DEFAULT_ROUTING_POLICY, RoutingPolicy
from token_economy.observability import get_logger
from token_economy.storage.audit_log import JsonlAuditSink
from token_economy.storage.models import AuditRecord

from .budget_gate import BudgetCheckResult, BudgetGate
from .classifier import classify, trigger_source_of
from .models import ResourceTier, TaskCategory
from .pricing import calculate_cost
from .router import FailureInput, RouteDecision, route
from .token_counter import TokenUsage

log = get_logger("engine")

DEFAULT_ESTIMATED_TOKENS = 10000


class ContextProvider(Protocol):
    """Supplies task context; only ever sees the task category."""

    def context_for(self, category: TaskCategory) -> Any:
        ...


@dataclass(frozen=True)
class TaskPlan:
    """Routing and admission outcome for one task attempt."""
    text: str
    trigger_source: str
    category: TaskCategory
    decision: RouteDecision
    budget: Optional[BudgetCheckResult]
    context: Any = None

    @property
    def resource_id(self) -> Optional[str]:
        return self.decision.resource_id

    @property
    def allowed(self) -> bool:
        return self.budget is None or self.budget.allowed

    @property
    def warnings(self) -> List[str]:
        return list(self.budget.warnings) if self.budget is not None else []


class TaskEngine:
    """Runs the classify, route and admit pipeline against one BudgetGate."""

    def __init__(
        self,
        gate: BudgetGate,
        policy: RoutingPolicy = DEFAULT_ROUTING_POLICY,
        audit_sink: Optional[JsonlAuditSink] = None,
        context_provider: Optional[ContextProvider] = None
    ):
        self.gate = gate
        self.policy = policy
        self.audit_sink = audit_sink
        self.context_provider = context_provider

    def plan(
        self,
        text: Any,
        meta: Optional[Mapping[str, Any]] = None,
        estimated_tokens: int = DEFAULT_ESTIMATED_TOKENS,
        attempt_number: int = 0,
        last_failure: FailureInput = None
    ) -> TaskPlan:
        """Classify, route and admit a task attempt.

        Budget denials come back as a plan with ``allowed`` False so the
        caller can downgrade, defer or alert.

        Raises:
            AttemptsExceeded: If the attempt ceiling has been reached
            UnconfiguredTier: If the policy cannot resolve the tier
        """
        trigger = trigger_source_of(meta)
        trigger_source = str(trigger) if trigger is not None else "unknown"
        category = classify(text, meta)
        decision = route(category, attempt_number, last_failure, self.policy)

        budget = None
        if decision.effective_tier != ResourceTier.NONE:
            budget = self.gate.check_budget(category, decision.resource_id, estimated_tokens)

        context = None
        if self.context_provider is not None and (budget is None or budget.allowed):
            context = self.context_provider.context_for(category)

        log.info(
            "engine.planned",
            category=category.value,
            attempt=attempt_number,
            resource=decision.resource_id,
            allowed=budget is None or budget.allowed,
        )
        return TaskPlan(
            text=text if isinstance(text, str) else "",
            trigger_source=trigger_source,
            category=category,
            decision=decision,
            budget=budget,
            context=context,
        )

    def complete(
        self,
        plan: TaskPlan,
        usage: TokenUsage,
        duration_ms: int = 0,
        success: bool = True,
        error_message: Optional[str] = None,
        session_key: str = "unknown"
    ) -> Optional[AuditRecord]:
        """Record the actual spend of a finished task.

        Call once per completed attempt. Heartbeat plans consume nothing and
        produce no record.

        Returns:
            The audit record written, or None for plans without a resource
        """
        if plan.resource_id is None:
            return None

        actual_cost = calculate_cost(plan.resource_id, usage, self.gate.pricing)
        self.gate.record_spend(actual_cost)

        record = AuditRecord(
            timestamp=self.gate.now(),
            trigger_source=plan.trigger_source,
            task_category=plan.category.value,
            resource_id=plan.resource_id,
            usage=usage,
            estimated_cost_usd=actual_cost,
            duration_ms=duration_ms,
            session_key=session_key,
            success=success,
            attempt_number=plan.decision.attempt_number,
            error_message=error_message,
            escalated=plan.decision.escalated,
        )
        if self.audit_sink is not None:
            try:
                self.audit_sink.append(record)
            except OSError as e:
                log.error("engine.audit_append_failed", path=str(self.audit_sink.path), error=str(e))
        return record
