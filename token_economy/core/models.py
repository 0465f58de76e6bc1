"""
Routing domain types.

Task categories, resource tiers and failure descriptors shared by the
classifier, router and budget gate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class TaskCategory(Enum):
    """Kinds of task the classifier can produce."""
    HEARTBEAT = "heartbeat"
    FILE_OPS = "file_ops"
    EXTRACT = "extract"
    SUMMARIZE = "summarize"
    WRITE = "write"
    CODE = "code"
    STRATEGY = "strategy"


class ResourceTier(Enum):
    """Cost/capability class of model. NONE means no model is consumed."""
    NONE = "none"
    CHEAP = "cheap"
    MID = "mid"
    HIGH = "high"


class FailureKind(Enum):
    """Outcome of a previous attempt that may warrant escalation."""
    VALIDATION = "validation"
    TOOL_ERROR = "tool_error"
    UNCERTAINTY = "uncertainty"


@dataclass(frozen=True)
class FailureDescriptor:
    """What went wrong on the previous attempt at the same task."""
    kind: FailureKind
    occurrence_count: int = 1

    @classmethod
    def from_dict(cls, data: Any) -> Optional["FailureDescriptor"]:
        """Build a descriptor from loose mapping input.

        Accepts ``kind`` or ``type`` for the failure kind and ``count`` or
        ``occurrence_count`` for the repeat count. Returns None when the
        input cannot be interpreted.
        """
        if isinstance(data, FailureDescriptor):
            return data
        if not isinstance(data, Mapping):
            return None

        raw_kind = data.get("kind", data.get("type"))
        if isinstance(raw_kind, FailureKind):
            kind = raw_kind
        elif isinstance(raw_kind, str):
            try:
                kind = FailureKind(raw_kind.strip().lower())
            except ValueError:
                return None
        else:
            return None

        count = data.get("occurrence_count", data.get("count", 1))
        if isinstance(count, bool) or not isinstance(count, int):
            return None
        return cls(kind=kind, occurrence_count=count)
