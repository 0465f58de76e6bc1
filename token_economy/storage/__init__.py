"""Audit sink and budget snapshot persistence."""

from .audit_log import JsonlAuditSink
from .models import AuditRecord, BudgetSnapshot, period_key_for
from .snapshot import JsonSnapshotStore

__all__ = [
    "AuditRecord",
    "BudgetSnapshot",
    "JsonlAuditSink",
    "JsonSnapshotStore",
    "period_key_for",
]
