"""
Budget admission control.

The BudgetGate owns the only mutable shared state in the engine: the current
daily period and cumulative spend within it. Every read and write goes through
a lock. A check followed later by a record for the same task is not atomic,
so concurrent admissions may overshoot the daily limit by at most the sum of
in-flight estimated costs. Admission is best-effort by design.

Check Order:
1. Period rollover - A task at a period boundary is judged against the new period
2. Per-task token limit
3. Per-task cost limit
4. Daily cost limit
5. Alert thresholds - Non-blocking warnings only
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from token_economy.config.loader import DEFAULT_BUDGET_CONFIG, BudgetConfig
from token_economy.observability import get_logger
from token_economy.storage.audit_log import JsonlAuditSink
from token_economy.storage.models import BudgetSnapshot, period_key_for
from token_economy.storage.snapshot import JsonSnapshotStore

from .errors import BudgetDenied, PersistFailure, RecoveryReadFailure
from .models import TaskCategory
from .pricing import PRICING_TABLE, PricingTable, calculate_cost
from .token_counter import split_estimate

log = get_logger("budget")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _usd(amount: float) -> Decimal:
    """Exact decimal form of a dollar amount as written."""
    return Decimal(str(amount))


@dataclass
class BudgetCheckResult:
    """Outcome of an admission check."""
    allowed: bool
    estimated_cost_usd: float
    estimated_tokens: int
    cumulative_spend_usd: float
    projected_spend_usd: float
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BudgetStatus:
    """Read-only view of the current period's spend."""
    period_key: str
    cumulative_spend_usd: float
    daily_limit: float
    remaining: float
    percent_used: float
    limits: Dict[str, Any]


class BudgetGate:
    """Stateful admission gate tracking same-day spend.

    Create one per process and pass it to everything that admits tasks.
    State changes only through rollover, record_spend and reset_daily.
    """

    def __init__(
        self,
        config: BudgetConfig = DEFAULT_BUDGET_CONFIG,
        audit_sink: Optional[JsonlAuditSink] = None,
        snapshot_store: Optional[JsonSnapshotStore] = None,
        pricing: PricingTable = PRICING_TABLE,
        clock: Callable[[], datetime] = utc_now,
        persist_timeout: float = 2.0
    ):
        """Initialize the gate and recover today's spend.

        Args:
            config: Budget limits
            audit_sink: Audit log replayed when no snapshot covers today
            snapshot_store: Where state is persisted; None keeps state in memory
            pricing: Pricing table for cost estimates
            clock: Returns the current time (timezone-aware)
            persist_timeout: Seconds to wait for a snapshot write
        """
        self.config = config
        self.audit_sink = audit_sink
        self.snapshot_store = snapshot_store
        self.pricing = pricing
        self._clock = clock
        self._persist_timeout = persist_timeout
        self._lock = threading.Lock()
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="budget-persist")
            if snapshot_store is not None
            else None
        )

        self._period_key = self._current_period()
        self._spend = Decimal("0")
        with self._lock:
            self._recover()

    def now(self) -> datetime:
        """Current time according to the gate's clock."""
        return self._clock()

    def _current_period(self) -> str:
        return period_key_for(self._clock())

    def _recover(self) -> None:
        """Rebuild today's spend from the snapshot or, failing that, the audit sink."""
        if self.snapshot_store is not None:
            snapshot = self.snapshot_store.load()
            if snapshot is not None and snapshot.period_key == self._period_key:
                self._spend = _usd(snapshot.cumulative_spend_usd)
                log.debug("budget.recovered_from_snapshot", period=self._period_key, spend=float(self._spend))
                return

        if self.audit_sink is not None:
            try:
                self._spend = _usd(self.audit_sink.spend_for_period(self._period_key))
                log.debug("budget.recovered_from_audit_log", period=self._period_key, spend=float(self._spend))
            except RecoveryReadFailure as e:
                log.warning("budget.recovery_failed", period=self._period_key, error=str(e))
                self._spend = Decimal("0")

        self._persist()

    def _rollover(self) -> None:
        current = self._current_period()
        if current != self._period_key:
            log.info(
                "budget.rollover",
                previous_period=self._period_key,
                previous_spend=float(self._spend),
                period=current,
            )
            self._period_key = current
            self._spend = Decimal("0")
            self._persist()

    def _persist(self) -> None:
        """Write the snapshot; failures and timeouts keep in-memory state."""
        if self.snapshot_store is None:
            return
        snapshot = BudgetSnapshot(
            period_key=self._period_key,
            cumulative_spend_usd=float(self._spend),
            last_updated=self._clock(),
        )
        future = self._executor.submit(self.snapshot_store.save, snapshot)
        try:
            future.result(timeout=self._persist_timeout)
        except FutureTimeout:
            log.warning("budget.persist_timeout", timeout=self._persist_timeout)
        except PersistFailure as e:
            log.warning("budget.persist_failed", error=str(e))

    def check_budget(
        self,
        category: TaskCategory,
        resource_id: str,
        estimated_tokens: int
    ) -> BudgetCheckResult:
        """Check whether a task can proceed within budget.

        Deny results still carry the computed cost and token estimate so
        rejected attempts can be logged.

        Args:
            category: Task category (informational)
            resource_id: Resource the task would run on
            estimated_tokens: Estimated total tokens (input + output)

        Returns:
            BudgetCheckResult with allowed flag, reason and warnings
        """
        usage = split_estimate(estimated_tokens)
        estimated_cost = calculate_cost(resource_id, usage, self.pricing)
        category_name = getattr(category, "value", category)

        with self._lock:
            self._rollover()
            exact_spend = self._spend

        exact_projected = exact_spend + _usd(estimated_cost)
        spend = float(exact_spend)
        projected = float(exact_projected)

        def deny(reason: str) -> BudgetCheckResult:
            log.warning(
                "budget.denied",
                category=category_name,
                resource=resource_id,
                estimated_tokens=estimated_tokens,
                estimated_cost=estimated_cost,
                reason=reason,
            )
            return BudgetCheckResult(
                allowed=False,
                estimated_cost_usd=estimated_cost,
                estimated_tokens=estimated_tokens,
                cumulative_spend_usd=spend,
                projected_spend_usd=projected,
                reason=reason,
            )

        if estimated_tokens > self.config.max_tokens_per_task:
            return deny(
                f"Task would exceed max_tokens_per_task ({self.config.max_tokens_per_task}). "
                f"Estimated: {estimated_tokens}"
            )

        if estimated_cost > self.config.max_cost_per_task_usd:
            return deny(
                f"Task would exceed max_cost_per_task_usd (${self.config.max_cost_per_task_usd}). "
                f"Estimated: ${estimated_cost:.4f}"
            )

        if exact_projected > _usd(self.config.max_daily_cost_usd):
            return deny(
                f"Would exceed max_daily_cost_usd (${self.config.max_daily_cost_usd}). "
                f"Current: ${spend:.2f}, Estimated task: ${estimated_cost:.4f}"
            )

        warnings = []
        alerts = self.config.alert_thresholds
        if estimated_cost >= alerts.task_cost_usd:
            warnings.append(
                f"Task cost (${estimated_cost:.4f}) exceeds alert threshold "
                f"(${alerts.task_cost_usd})"
            )
        if exact_projected >= _usd(alerts.daily_cost_usd):
            warnings.append(
                f"Daily spend would reach ${projected:.2f} "
                f"(threshold: ${alerts.daily_cost_usd})"
            )
        if warnings:
            log.info("budget.alert", category=category_name, resource=resource_id, warnings=warnings)

        return BudgetCheckResult(
            allowed=True,
            estimated_cost_usd=estimated_cost,
            estimated_tokens=estimated_tokens,
            cumulative_spend_usd=spend,
            projected_spend_usd=projected,
            warnings=warnings,
        )

    def admit(
        self,
        category: TaskCategory,
        resource_id: str,
        estimated_tokens: int
    ) -> BudgetCheckResult:
        """Like check_budget, but raise when the task is denied.

        Raises:
            BudgetDenied: If any limit would be exceeded
        """
        result = self.check_budget(category, resource_id, estimated_tokens)
        if not result.allowed:
            raise BudgetDenied(result)
        return result

    def record_spend(self, actual_cost_usd: float) -> None:
        """Add a completed task's cost to today's spend and persist.

        Call exactly once per completed task.

        Raises:
            ValueError: If the cost is negative or not finite
        """
        if not math.isfinite(actual_cost_usd) or actual_cost_usd < 0:
            raise ValueError("actual_cost_usd must be a finite number >= 0")
        with self._lock:
            self._rollover()
            self._spend += _usd(actual_cost_usd)
            self._persist()

    def get_status(self) -> BudgetStatus:
        """Report current spend against the daily limit."""
        with self._lock:
            self._rollover()
            period_key = self._period_key
            spend = float(self._spend)
            remaining = float(max(Decimal("0"), _usd(self.config.max_daily_cost_usd) - self._spend))

        daily_limit = self.config.max_daily_cost_usd
        percent_used = (spend / daily_limit) * 100 if daily_limit > 0 else (100.0 if spend > 0 else 0.0)
        return BudgetStatus(
            period_key=period_key,
            cumulative_spend_usd=spend,
            daily_limit=daily_limit,
            remaining=remaining,
            percent_used=percent_used,
            limits={
                "max_tokens_per_task": self.config.max_tokens_per_task,
                "max_cost_per_task_usd": self.config.max_cost_per_task_usd,
                "max_daily_cost_usd": self.config.max_daily_cost_usd,
            },
        )

    def reset_daily(self) -> None:
        """Zero today's spend (manual reset)."""
        with self._lock:
            self._period_key = self._current_period()
            self._spend = Decimal("0")
            self._persist()
        log.info("budget.reset", period=self._period_key)

    def close(self) -> None:
        """Release the persistence worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
