"""
Append-only JSON-lines audit sink.

One AuditRecord per line. Readers skip blank and unparseable lines instead of
failing the whole scan.
"""

import json
import os
import threading
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Union

from token_economy.core.errors import RecoveryReadFailure
from token_economy.observability import get_logger

from .models import AuditRecord

log = get_logger("audit_log")


class JsonlAuditSink:
    """Audit sink backed by a JSON-lines file.

    The file is only ever appended to; records are never rewritten.
    """

    def __init__(self, path: Union[str, Path]):
        """Initialize the sink.

        Args:
            path: Path to the JSON-lines file (created on first append)
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        """Append a single record to the log.

        Raises:
            OSError: If the file cannot be written
        """
        line = json.dumps(record.to_dict(), default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
                os.fsync(f.fileno())

    def iter_records(self) -> Iterator[AuditRecord]:
        """Yield every parseable record in file order.

        A missing file yields nothing.

        Raises:
            RecoveryReadFailure: If the file exists but cannot be read
        """
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                for line_number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        yield AuditRecord.from_dict(json.loads(line))
                    except ValueError as e:
                        # json.JSONDecodeError is a ValueError too
                        log.debug(
                            "audit_log.skipped_line",
                            path=str(self.path),
                            line=line_number,
                            error=str(e),
                        )
        except OSError as e:
            raise RecoveryReadFailure(f"Cannot read audit log {self.path}: {e}") from e

    def spend_for_period(self, period_key: str) -> float:
        """Sum estimated cost of all records in a daily period.

        Raises:
            RecoveryReadFailure: If the file exists but cannot be read
        """
        total = sum(
            (Decimal(str(record.estimated_cost_usd))
             for record in self.iter_records()
             if record.period_key == period_key),
            Decimal("0"),
        )
        return float(total)
