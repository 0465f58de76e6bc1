"""
Task classification.

Maps free-text task input plus trigger metadata to a TaskCategory using an
ordered list of pattern rules. Rules are evaluated top to bottom and the first
match wins, so rule order is the precedence contract.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from .models import ResourceTier, TaskCategory

HEARTBEAT_TRIGGER = "heartbeat"

_HEARTBEAT_FILE = re.compile(r"heartbeat\.md\b")
_FILE_OP_VERB = re.compile(
    r"^(read|write|edit|ls|cat|find|grep|mv|cp|rm|mkdir|touch|chmod)\b"
)
_FILE_DISPLAY = re.compile(
    r"\b(show|display|list|open|view|check)\s+(me\s+)?((the|this|that|a)\s+)?"
    r"(file|directory|folder)"
)
_EXTRACT = re.compile(
    r"\b(extract|parse|get|fetch|scrape|pull|retrieve)\s+((the|this|that|all|some)\s+)?"
    r"(data|information|info|content|text)"
)
_SUMMARIZE = re.compile(
    r"\b(summari[sz]e|summary|tl;?dr|brief|overview|condense|abstract)"
)
_CODE = re.compile(
    r"\b(code|function|debug|implement|refactor|script|program|bug|error|syntax)"
)
_LANGUAGE = re.compile(
    r"\b(javascript|python|typescript|java|ruby|golang|rust|class|import|export)\b"
)
_STRATEGY = re.compile(
    r"\b(analy[sz]e|design|architecture|strategy|plan|should\s+(i|we)\b|evaluate"
    r"|decide|recommend|approach|consider)"
)

Predicate = Callable[[str, Mapping[str, Any]], bool]


@dataclass(frozen=True)
class ClassificationRule:
    """A single prioritized classification rule."""
    name: str
    category: TaskCategory
    predicate: Predicate

    def matches(self, text: str, meta: Mapping[str, Any]) -> bool:
        return self.predicate(text, meta)


def _pattern(regex: "re.Pattern[str]") -> Predicate:
    return lambda text, meta: regex.search(text) is not None


RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "heartbeat_trigger",
        TaskCategory.HEARTBEAT,
        lambda text, meta: meta.get("trigger_source") == HEARTBEAT_TRIGGER,
    ),
    ClassificationRule(
        "heartbeat_file",
        TaskCategory.HEARTBEAT,
        lambda text, meta: "heartbeat" in text and _HEARTBEAT_FILE.search(text) is not None,
    ),
    ClassificationRule("file_op_verb", TaskCategory.FILE_OPS, _pattern(_FILE_OP_VERB)),
    ClassificationRule("file_display", TaskCategory.FILE_OPS, _pattern(_FILE_DISPLAY)),
    ClassificationRule("extract", TaskCategory.EXTRACT, _pattern(_EXTRACT)),
    ClassificationRule("summarize", TaskCategory.SUMMARIZE, _pattern(_SUMMARIZE)),
    ClassificationRule("code_action", TaskCategory.CODE, _pattern(_CODE)),
    ClassificationRule("code_language", TaskCategory.CODE, _pattern(_LANGUAGE)),
    ClassificationRule("strategy", TaskCategory.STRATEGY, _pattern(_STRATEGY)),
)

DEFAULT_CATEGORY = TaskCategory.WRITE


TRIGGER_KEYS = ("trigger_source", "triggerSource", "trigger")


def trigger_source_of(meta: Any) -> Optional[str]:
    """Trigger source named in task metadata, under any accepted key."""
    if not isinstance(meta, Mapping):
        return None
    for key in TRIGGER_KEYS:
        if meta.get(key) is not None:
            return meta[key]
    return None


def _normalize_meta(meta: Any) -> Mapping[str, Any]:
    return {"trigger_source": trigger_source_of(meta)}


def match_rule(text: Any, meta: Optional[Mapping[str, Any]] = None) -> Optional[ClassificationRule]:
    """Return the first rule matching the input, or None for the default."""
    if not isinstance(text, str):
        return None
    normalized = text.strip().lower()
    context = _normalize_meta(meta)
    for rule in RULES:
        if rule.matches(normalized, context):
            return rule
    return None


def classify(text: Any, meta: Optional[Mapping[str, Any]] = None) -> TaskCategory:
    """Classify task text into a TaskCategory.

    Never raises: non-string text, malformed metadata and unrecognized input
    all fall back to WRITE.

    Args:
        text: Task text as submitted by the caller
        meta: Optional trigger metadata; ``trigger_source`` (or ``trigger``)
            equal to "heartbeat" short-circuits to HEARTBEAT

    Returns:
        The classified TaskCategory
    """
    rule = match_rule(text, meta)
    return rule.category if rule is not None else DEFAULT_CATEGORY


_DESCRIPTIONS = {
    TaskCategory.HEARTBEAT: "System heartbeat check",
    TaskCategory.FILE_OPS: "File system operation",
    TaskCategory.EXTRACT: "Data extraction/parsing",
    TaskCategory.SUMMARIZE: "Content summarization",
    TaskCategory.WRITE: "Writing/conversation",
    TaskCategory.CODE: "Programming/debugging",
    TaskCategory.STRATEGY: "Planning/analysis",
}

_RECOMMENDED_TIERS = {
    TaskCategory.HEARTBEAT: ResourceTier.NONE,
    TaskCategory.FILE_OPS: ResourceTier.CHEAP,
    TaskCategory.EXTRACT: ResourceTier.CHEAP,
    TaskCategory.SUMMARIZE: ResourceTier.CHEAP,
    TaskCategory.WRITE: ResourceTier.MID,
    TaskCategory.CODE: ResourceTier.MID,
    TaskCategory.STRATEGY: ResourceTier.HIGH,
}


def describe_category(category: TaskCategory) -> str:
    """Human-readable description of a task category."""
    return _DESCRIPTIONS.get(category, "Unknown task type")


def recommended_tier(category: TaskCategory) -> ResourceTier:
    """Tier a category routes to under the default policy."""
    return _RECOMMENDED_TIERS.get(category, ResourceTier.MID)
