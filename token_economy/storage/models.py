"""
Data models for storage layer.

Defines the audit record and budget snapshot documents and their wire format.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from token_economy.core.token_counter import TokenUsage


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError("timestamp must be an ISO-8601 string")
    # Python < 3.11 does not accept a trailing "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _cost(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite non-negative number")
    return float(value)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def period_key_for(moment: datetime) -> str:
    """Daily period key (YYYY-MM-DD, UTC) containing a moment."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date().isoformat()


@dataclass(frozen=True)
class AuditRecord:
    """Immutable record of one completed task for cost tracking.

    Append-only events that create an auditable ledger of model spend.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    trigger_source: str
    task_category: str
    resource_id: str
    usage: TokenUsage
    estimated_cost_usd: float
    duration_ms: int
    session_key: str
    success: bool
    attempt_number: int = 0
    error_message: Optional[str] = None
    escalated: bool = False

    @property
    def period_key(self) -> str:
        return period_key_for(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON-lines wire format."""
        data = {
            "timestamp": _format_timestamp(self.timestamp),
            "trigger": self.trigger_source,
            "taskType": self.task_category,
            "model": self.resource_id,
            "promptTokens": self.usage.input_tokens,
            "completionTokens": self.usage.output_tokens,
            "totalTokens": self.usage.total_tokens,
            "estimatedCostUSD": self.estimated_cost_usd,
            "durationMs": self.duration_ms,
            "sessionKey": self.session_key,
            "success": self.success,
            "escalation": self.escalated,
            "attempt": self.attempt_number,
        }
        if self.error_message is not None:
            data["error"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditRecord":
        """Parse a wire-format record.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        if not isinstance(data, Mapping):
            raise ValueError("audit record must be a JSON object")
        cost = _cost(data.get("estimatedCostUSD", 0), "estimatedCostUSD")
        try:
            usage = TokenUsage(
                input_tokens=int(data.get("promptTokens", 0)),
                output_tokens=int(data.get("completionTokens", 0)),
            )
            return cls(
                timestamp=_parse_timestamp(data.get("timestamp")),
                trigger_source=str(data.get("trigger", "unknown")),
                task_category=str(data.get("taskType", "write")),
                resource_id=str(data.get("model", "unknown")),
                usage=usage,
                estimated_cost_usd=cost,
                duration_ms=int(data.get("durationMs", 0)),
                session_key=str(data.get("sessionKey", "unknown")),
                success=bool(data.get("success", True)),
                attempt_number=int(data.get("attempt", 0)),
                error_message=data.get("error"),
                escalated=bool(data.get("escalation", False)),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Malformed audit record: {e}")


@dataclass(frozen=True)
class BudgetSnapshot:
    """Persisted budget state for one period."""
    period_key: str
    cumulative_spend_usd: float
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "periodKey": self.period_key,
            "cumulativeSpendUSD": self.cumulative_spend_usd,
            "lastUpdated": _format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BudgetSnapshot":
        """Parse a snapshot document.

        Raises:
            ValueError: If the document is malformed
        """
        if not isinstance(data, Mapping):
            raise ValueError("budget snapshot must be a JSON object")
        period_key = data.get("periodKey")
        spend = _cost(data.get("cumulativeSpendUSD"), "cumulativeSpendUSD")
        if not isinstance(period_key, str) or not period_key:
            raise ValueError("periodKey must be a non-empty string")
        last_updated = data.get("lastUpdated")
        return cls(
            period_key=period_key,
            cumulative_spend_usd=spend,
            last_updated=(
                _parse_timestamp(last_updated)
                if last_updated is not None
                else datetime.now(timezone.utc)
            ),
        )
