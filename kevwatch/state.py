"""Notification ledger and its persistent store.

The ledger remembers every KEV identity ever seen and whether a
notification has been sent for it, so each relevant entry is notified
exactly once across runs.  The store keeps the ledger as a JSON file with
schema versioning and writes it atomically.
"""

import datetime as dt
import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import PersistenceError
from .models import NotificationState, VulnerabilityRecord

logger = logging.getLogger(__name__)


class Ledger:
    """Mapping of record id to ``NotificationState``, in insertion order.

    A record moves ``Unseen -> Tracked(sent=False) -> Tracked(sent=True)``
    and never back.
    """

    def __init__(self, states: Iterable[NotificationState] = ()):
        self._states: dict[str, NotificationState] = {}
        for state in states:
            current = self._states.get(state.record_id)
            if current is not None and current.sent:
                logger.warning("Duplicate ledger entry for %s ignored, keeping the sent one", state.record_id)
                continue
            self._states[state.record_id] = state

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._states

    def lookup(self, record_id: str) -> NotificationState:
        """Return the state for ``record_id``, or an unsent default if unseen.

        Does not start tracking an unseen id; use ``merge`` for that.
        """
        state = self._states.get(record_id)
        if state is None:
            return NotificationState(record_id=record_id)
        return state

    def merge(self, records: Iterable[VulnerabilityRecord]) -> int:
        """Start tracking every record identity not yet in the ledger.

        Args:
            records: Freshly fetched feed records.

        Returns:
            Number of identities added.
        """
        added = 0
        for record in records:
            if record.id not in self._states:
                self._states[record.id] = NotificationState(record_id=record.id)
                added += 1
        return added

    def mark_sent(self, record_id: str, at: dt.datetime) -> bool:
        """Record that a notification was sent for ``record_id``.

        An id the ledger has not seen is tracked as unsent first, then
        marked.  Marking an already-sent record is a no-op: ``sent_at``
        never moves.

        Args:
            record_id: CVE identifier.
            at: Time the notification was sent.

        Returns:
            True if the state changed.
        """
        current = self._states.setdefault(record_id, NotificationState(record_id=record_id))
        if current.sent:
            logger.debug("%s already marked sent at %s, ignoring", record_id, current.sent_at.isoformat())
            return False
        self._states[record_id] = NotificationState(record_id=record_id, sent=True, sent_at=at)
        return True

    def snapshot(self) -> list[tuple[str, NotificationState]]:
        """Return ``(record_id, state)`` pairs in insertion order."""
        return list(self._states.items())

    def stats(self) -> dict[str, int]:
        """Return ``tracked`` and ``sent`` counts."""
        sent = sum(1 for s in self._states.values() if s.sent)
        return {"tracked": len(self._states), "sent": sent}


class LedgerStore:
    """Loads and saves a ``Ledger`` as a versioned JSON document.

    Layout::

        {
          "schema_version": 1,
          "records": [
            {"id": "CVE-2024-12345", "sent": true, "sent_at": "2024-06-01T12:00:00Z"},
            {"id": "CVE-2024-67890", "sent": false, "sent_at": null}
          ]
        }

    Attributes:
        path: Path to the ledger JSON file.
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Ledger:
        """Load the ledger; a missing file is an empty ledger.

        Raises:
            PersistenceError: if the file is unreadable, corrupt, or has a
                different schema version.
        """
        if not self.path.exists():
            return Ledger()

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read ledger {self.path}: {e}") from e

        if not isinstance(data, dict) or data.get("schema_version") != self.SCHEMA_VERSION:
            raise PersistenceError(f"Ledger {self.path} has an unsupported schema version")

        records = data.get("records")
        if not isinstance(records, list):
            raise PersistenceError(f"Ledger {self.path} has no records list")

        try:
            return Ledger(NotificationState.model_validate(r) for r in records)
        except ValidationError as e:
            raise PersistenceError(f"Ledger {self.path} contains an invalid record: {e}") from e

    def load_or_empty(self) -> Ledger:
        """Load the ledger, starting fresh if it cannot be read.

        The worst case is a duplicate notification on the next run, which is
        preferable to never notifying again.
        """
        try:
            return self.load()
        except PersistenceError as e:
            logger.warning("%s; starting with an empty ledger", e)
            return Ledger()

    def _serialize(self, ledger: Ledger) -> dict[str, Any]:
        return {
            "schema_version": self.SCHEMA_VERSION,
            "records": [state.model_dump(mode="json", by_alias=True) for _, state in ledger.snapshot()],
        }

    def save(self, ledger: Ledger) -> None:
        """Save the ledger atomically (write-then-rename).

        Raises:
            PersistenceError: if the file cannot be written.  The previous
                file is left intact.
        """
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(self._serialize(ledger), f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self.path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise PersistenceError(f"Could not write ledger {self.path}: {e}") from e
        logger.debug("Saved %d ledger entries to %s", len(ledger), self.path)
