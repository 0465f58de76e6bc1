"""
Budget snapshot persistence.

A single JSON document overwritten wholesale on every change.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from token_economy.core.errors import PersistFailure
from token_economy.observability import get_logger

from .models import BudgetSnapshot

log = get_logger("snapshot")


class JsonSnapshotStore:
    """Budget snapshot stored as a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[BudgetSnapshot]:
        """Load the stored snapshot.

        Returns:
            The snapshot, or None if the file is missing or unreadable
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return BudgetSnapshot.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            log.warning("snapshot.unreadable", path=str(self.path), error=str(e))
            return None

    def save(self, snapshot: BudgetSnapshot) -> None:
        """Replace the stored snapshot atomically.

        Raises:
            PersistFailure: If the snapshot cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(snapshot.to_dict(), f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistFailure(f"Failed to save budget state to {self.path}: {e}") from e
