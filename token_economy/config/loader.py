"""
Configuration management and loading.

Defines the routing policy, budget limits and file locations, and loads them
from a YAML file. Every field is optional in the file and falls back to the
documented default; unknown keys are rejected.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from token_economy.core.models import ResourceTier, TaskCategory
from token_economy.core.pricing import PRICING_TABLE, ModelPricing, PricingTable
from token_economy.observability import get_logger

log = get_logger("config")

CONFIG_ENV_VAR = "TOKEN_ECONOMY_CONFIG"
AUDIT_LOG_ENV_VAR = "TOKEN_AUDIT_LOG"
BUDGET_STATE_ENV_VAR = "TOKEN_BUDGET_STATE"

DEFAULT_HOME = Path.home() / ".token_economy"


@dataclass(frozen=True)
class EscalationTriggers:
    """Which failure signals are allowed to escalate a retried task."""
    validation_failure: bool = True
    tool_error_repeated: bool = True
    uncertainty_signal: bool = True


@dataclass(frozen=True)
class RoutingPolicy:
    """Tier defaults, category routes and escalation settings."""
    defaults: Mapping[ResourceTier, str] = field(default_factory=lambda: {
        ResourceTier.CHEAP: "openai/gpt-4o",
        ResourceTier.MID: "anthropic/claude-sonnet-4-5",
        ResourceTier.HIGH: "anthropic/claude-opus-4-5",
    })
    routes: Mapping[TaskCategory, ResourceTier] = field(default_factory=lambda: {
        TaskCategory.HEARTBEAT: ResourceTier.NONE,
        TaskCategory.FILE_OPS: ResourceTier.CHEAP,
        TaskCategory.EXTRACT: ResourceTier.CHEAP,
        TaskCategory.SUMMARIZE: ResourceTier.CHEAP,
        TaskCategory.WRITE: ResourceTier.MID,
        TaskCategory.CODE: ResourceTier.MID,
        TaskCategory.STRATEGY: ResourceTier.HIGH,
    })
    escalation: Tuple[ResourceTier, ...] = (
        ResourceTier.CHEAP,
        ResourceTier.MID,
        ResourceTier.HIGH,
    )
    max_attempts: int = 3
    escalation_triggers: EscalationTriggers = field(default_factory=EscalationTriggers)

    def __post_init__(self):
        """Validate policy shape and freeze the mappings."""
        object.__setattr__(self, "defaults", MappingProxyType(dict(self.defaults)))
        object.__setattr__(self, "routes", MappingProxyType(dict(self.routes)))
        object.__setattr__(self, "escalation", tuple(self.escalation))
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not self.escalation:
            raise ValueError("escalation ladder must not be empty")
        if ResourceTier.NONE in self.escalation:
            raise ValueError("escalation ladder cannot contain the 'none' tier")


DEFAULT_ROUTING_POLICY = RoutingPolicy()


@dataclass(frozen=True)
class AlertThresholds:
    """Non-blocking alert levels for task and daily spend."""
    task_cost_usd: float = 2.0
    daily_cost_usd: float = 20.0

    def __post_init__(self):
        """Validate thresholds are non-negative."""
        if self.task_cost_usd < 0:
            raise ValueError("task_cost_usd must be >= 0")
        if self.daily_cost_usd < 0:
            raise ValueError("daily_cost_usd must be >= 0")


@dataclass(frozen=True)
class BudgetConfig:
    """Budget limits for admission control."""
    max_tokens_per_task: int = 120000
    max_cost_per_task_usd: float = 5.0
    max_daily_cost_usd: float = 25.0
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)

    def __post_init__(self):
        """Validate budget values are non-negative."""
        if self.max_tokens_per_task < 0:
            raise ValueError("max_tokens_per_task must be >= 0")
        if self.max_cost_per_task_usd < 0:
            raise ValueError("max_cost_per_task_usd must be >= 0")
        if self.max_daily_cost_usd < 0:
            raise ValueError("max_daily_cost_usd must be >= 0")
        if self.max_cost_per_task_usd > self.max_daily_cost_usd:
            log.warning(
                "config.task_limit_exceeds_daily_limit",
                max_cost_per_task_usd=self.max_cost_per_task_usd,
                max_daily_cost_usd=self.max_daily_cost_usd,
            )


DEFAULT_BUDGET_CONFIG = BudgetConfig()


@dataclass(frozen=True)
class PathsConfig:
    """Locations of the audit log and the budget snapshot."""
    audit_log: Path = DEFAULT_HOME / "audit_log.jsonl"
    budget_state: Path = DEFAULT_HOME / "budget-state.json"


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    policy: RoutingPolicy = DEFAULT_ROUTING_POLICY
    budgets: BudgetConfig = DEFAULT_BUDGET_CONFIG
    pricing: PricingTable = PRICING_TABLE
    paths: PathsConfig = field(default_factory=PathsConfig)


# camelCase spellings accepted alongside the canonical snake_case keys
_ALIASES = {
    "maxAttempts": "max_attempts",
    "escalationTriggers": "escalation_triggers",
    "maxTokensPerTask": "max_tokens_per_task",
    "maxCostPerTaskUSD": "max_cost_per_task_usd",
    "maxDailyCostUSD": "max_daily_cost_usd",
    "alertThresholds": "alert_thresholds",
    "onExceed": "on_exceed",
    "taskCostUSD": "task_cost_usd",
    "dailyCostUSD": "daily_cost_usd",
    "modelPolicy": "model_policy",
    "auditLog": "audit_log",
    "budgetState": "budget_state",
}


def _canonical(data: Mapping[str, Any], allowed: set, path: str) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"'{path}' must be a dictionary")
    result = {}
    for key, value in data.items():
        result[_ALIASES.get(key, key)] = value
    unknown_keys = set(result.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
    return result


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    if value < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return float(value)


def _tier(value: Any, path: str) -> ResourceTier:
    try:
        return ResourceTier(str(value).lower())
    except ValueError:
        valid_tiers = [tier.value for tier in ResourceTier]
        raise ValueError(f"'{path}' must be one of: {valid_tiers}")


def parse_routing_policy(data: Optional[Mapping[str, Any]]) -> RoutingPolicy:
    """Parse a routing policy mapping, filling absent fields from defaults.

    Args:
        data: Mapping from the ``model_policy`` config section

    Returns:
        Validated RoutingPolicy

    Raises:
        ValueError: If a field is invalid
    """
    if not data:
        return DEFAULT_ROUTING_POLICY
    allowed = {"defaults", "routes", "escalation", "max_attempts", "escalation_triggers"}
    data = _canonical(data, allowed, "model_policy")

    defaults = dict(DEFAULT_ROUTING_POLICY.defaults)
    if "defaults" in data:
        raw_defaults = _canonical(
            data["defaults"], {t.value for t in ResourceTier}, "model_policy.defaults"
        )
        for tier_name, resource_id in raw_defaults.items():
            if not isinstance(resource_id, str) or not resource_id.strip():
                raise ValueError(
                    f"'model_policy.defaults.{tier_name}' must be a non-empty string"
                )
            defaults[ResourceTier(tier_name)] = resource_id.strip()

    routes = dict(DEFAULT_ROUTING_POLICY.routes)
    if "routes" in data:
        raw_routes = _canonical(
            data["routes"], {c.value for c in TaskCategory}, "model_policy.routes"
        )
        for category_name, tier_name in raw_routes.items():
            routes[TaskCategory(category_name)] = _tier(
                tier_name, f"model_policy.routes.{category_name}"
            )
        if routes[TaskCategory.HEARTBEAT] != ResourceTier.NONE:
            raise ValueError("'model_policy.routes.heartbeat' must be 'none'")

    escalation = DEFAULT_ROUTING_POLICY.escalation
    if "escalation" in data:
        raw_ladder = data["escalation"]
        if not isinstance(raw_ladder, list):
            raise ValueError("'model_policy.escalation' must be a list")
        escalation = tuple(
            _tier(name, f"model_policy.escalation[{i}]") for i, name in enumerate(raw_ladder)
        )

    max_attempts = DEFAULT_ROUTING_POLICY.max_attempts
    if "max_attempts" in data:
        raw_attempts = data["max_attempts"]
        if isinstance(raw_attempts, bool) or not isinstance(raw_attempts, int):
            raise ValueError("'model_policy.max_attempts' must be an integer")
        max_attempts = raw_attempts

    triggers = DEFAULT_ROUTING_POLICY.escalation_triggers
    if "escalation_triggers" in data:
        raw_triggers = _canonical(
            data["escalation_triggers"],
            {"validation_failure", "tool_error_repeated", "uncertainty_signal"},
            "model_policy.escalation_triggers",
        )
        for name, value in raw_triggers.items():
            if not isinstance(value, bool):
                raise ValueError(f"'model_policy.escalation_triggers.{name}' must be a boolean")
        triggers = EscalationTriggers(**raw_triggers)

    return RoutingPolicy(
        defaults=defaults,
        routes=routes,
        escalation=escalation,
        max_attempts=max_attempts,
        escalation_triggers=triggers,
    )


def parse_budget_config(data: Optional[Mapping[str, Any]]) -> BudgetConfig:
    """Parse a budget mapping, filling absent fields from defaults.

    Args:
        data: Mapping from the ``budgets`` config section

    Returns:
        Validated BudgetConfig

    Raises:
        ValueError: If a field is invalid
    """
    if not data:
        return DEFAULT_BUDGET_CONFIG
    allowed = {
        "max_tokens_per_task", "max_cost_per_task_usd",
        "max_daily_cost_usd", "alert_thresholds", "on_exceed",
    }
    data = _canonical(data, allowed, "budgets")
    # on_exceed is accepted for compatibility; denial is the only action.
    data.pop("on_exceed", None)

    kwargs: Dict[str, Any] = {}
    if "max_tokens_per_task" in data:
        kwargs["max_tokens_per_task"] = int(
            _number(data["max_tokens_per_task"], "budgets.max_tokens_per_task")
        )
    for key in ("max_cost_per_task_usd", "max_daily_cost_usd"):
        if key in data:
            kwargs[key] = _number(data[key], f"budgets.{key}")

    if "alert_thresholds" in data:
        raw_alerts = _canonical(
            data["alert_thresholds"],
            {"task_cost_usd", "daily_cost_usd"},
            "budgets.alert_thresholds",
        )
        kwargs["alert_thresholds"] = AlertThresholds(**{
            key: _number(value, f"budgets.alert_thresholds.{key}")
            for key, value in raw_alerts.items()
        })

    return BudgetConfig(**kwargs)


def parse_pricing(data: Optional[Mapping[str, Any]]) -> PricingTable:
    """Parse ``pricing`` overrides and merge them over the built-in table."""
    if not data:
        return PRICING_TABLE
    if not isinstance(data, Mapping):
        raise ValueError("'pricing' must be a dictionary")

    overrides = {}
    for resource_id, entry in data.items():
        path = f"pricing.{resource_id}"
        entry = _canonical(entry, {"input", "output"}, path)
        if set(entry.keys()) != {"input", "output"}:
            raise ValueError(f"'{path}' requires both 'input' and 'output' per-1K prices")
        try:
            overrides[str(resource_id)] = ModelPricing(
                input_cost_per_1k=Decimal(str(_number(entry["input"], f"{path}.input"))),
                output_cost_per_1k=Decimal(str(_number(entry["output"], f"{path}.output"))),
            )
        except InvalidOperation:
            raise ValueError(f"'{path}' contains an invalid price")
    return PRICING_TABLE.with_overrides(overrides)


def parse_paths(data: Optional[Mapping[str, Any]]) -> PathsConfig:
    """Resolve file locations: environment variables win over the config file."""
    data = _canonical(data or {}, {"audit_log", "budget_state"}, "paths")
    defaults = PathsConfig()
    audit_log = os.environ.get(AUDIT_LOG_ENV_VAR) or data.get("audit_log") or defaults.audit_log
    budget_state = (
        os.environ.get(BUDGET_STATE_ENV_VAR) or data.get("budget_state") or defaults.budget_state
    )
    return PathsConfig(
        audit_log=Path(audit_log).expanduser(),
        budget_state=Path(budget_state).expanduser(),
    )


def load_engine_config(path: Optional[str] = None) -> EngineConfig:
    """Load and validate engine configuration from a YAML file.

    When no path is given, ``TOKEN_ECONOMY_CONFIG`` is consulted; with neither
    set, the built-in defaults are returned. Absent sections and fields fall
    back to their defaults, but unknown keys are rejected so misspelled limits
    never silently disappear.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated EngineConfig object

    Raises:
        FileNotFoundError: If an explicitly named config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return EngineConfig(paths=parse_paths(None))

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    raw_config = _canonical(
        raw_config or {}, {"model_policy", "budgets", "pricing", "paths"}, "config"
    )

    config = EngineConfig(
        policy=parse_routing_policy(raw_config.get("model_policy")),
        budgets=parse_budget_config(raw_config.get("budgets")),
        pricing=parse_pricing(raw_config.get("pricing")),
        paths=parse_paths(raw_config.get("paths")),
    )
    log.debug("config.loaded", path=str(config_path))
    return config
