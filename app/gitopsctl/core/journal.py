"""Reconciliation pass journal.

This module provides the Journal class for persisting and querying pass
records in a JSONL file.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from gitopsctl.core.paths import get_journal_path
from gitopsctl.models.history import PassRecord, create_pass_record

if TYPE_CHECKING:
    from gitopsctl.models.result import ReconcileResult

logger = logging.getLogger(__name__)


class Journal:
    """Append-only journal of reconciliation passes.

    Storage location: ~/.local/state/gitopsctl/journal.jsonl

    Each line is a complete JSON object representing a PassRecord.
    Write failures are logged and never interrupt a pass.

    Attributes:
        path: Path to the journal file.
    """

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the journal.

        Args:
            path: Optional override for the journal file.
                  Default: ~/.local/state/gitopsctl/journal.jsonl
        """
        self.path = path if path is not None else get_journal_path()
        self._lock = threading.Lock()

    def record(self, result: ReconcileResult) -> PassRecord | None:
        """Append the outcome of a pass.

        Args:
            result: Result of the finished pass.

        Returns:
            The written record, or None if writing failed.
        """
        entry = create_pass_record(result)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open(mode="a", encoding="utf-8") as f:
                    f.write(entry.to_json_line() + "\n")
                    f.flush()
        except OSError as e:
            logger.warning("Failed to record pass for %s: %s", result.key, e)
            return None
        return entry

    def entries(
        self,
        limit: int | None = None,
        application: str | None = None,
    ) -> list[PassRecord]:
        """Read pass records, newest first.

        Args:
            limit: Maximum number of records to return.
            application: Only return records for this "namespace/name" key.

        Returns:
            List of PassRecord, newest first. Empty if no journal exists.
        """
        if not self.path.exists():
            return []

        records: list[PassRecord] = []
        with self.path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = PassRecord.from_json_line(line)
                except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                    logger.warning("Skipping corrupt journal line %d: %s", line_num, e)
                    continue
                if application is None or entry.application == application:
                    records.append(entry)

        records.reverse()
        if limit is not None:
            return records[:limit]
        return records
