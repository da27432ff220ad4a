"""Reconciliation of a fetched feed against the notification ledger.

Decides which records need a notification this run and marks them sent.
Records that are excluded or out of scope stay unsent and are evaluated
again on the next run, so a term added later can still pick up older
entries.
"""

import datetime as dt
import logging
from collections.abc import Sequence
from typing import NamedTuple

from .config import MatchConfig
from .matching import Classification, classify_all
from .models import VulnerabilityRecord
from .state import Ledger

logger = logging.getLogger(__name__)


class ReconcileResult(NamedTuple):
    """Outcome of one reconciliation.

    Attributes:
        to_notify: Newly in-scope records, ascending by ``date_added``.
        ledger_changed: True if the ledger gained identities or had a
            record marked sent, meaning it should be saved.
    """

    to_notify: list[VulnerabilityRecord]
    ledger_changed: bool


def _now_utc() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0)


def reconcile(
    records: Sequence[VulnerabilityRecord],
    config: MatchConfig,
    ledger: Ledger,
    now: dt.datetime | None = None,
) -> ReconcileResult:
    """Merge ``records`` into ``ledger`` and collect the notification batch.

    Already-sent records are skipped without being classified.  Every other
    record is classified against ``config``; in-scope records are appended
    to the batch and marked sent at ``now``.

    Args:
        records: Freshly fetched feed records, in any order.
        config: Matching terms for this run.
        ledger: The ledger to update in place.
        now: Timestamp recorded as ``sent_at``.  Defaults to the current
            UTC time.

    Returns:
        ``ReconcileResult`` with the batch and whether the ledger changed.
    """
    sent_at = now or _now_utc()
    added = ledger.merge(records)
    if added:
        logger.info("Tracking %d new KEV entries", added)

    pending: list[VulnerabilityRecord] = []
    queued: set[str] = set()
    for record in sorted(records, key=lambda r: r.date_added):
        if ledger.lookup(record.id).sent:
            logger.debug("%s already notified, skipping", record.id)
            continue
        if record.id in queued:
            continue
        queued.add(record.id)
        pending.append(record)

    to_notify: list[VulnerabilityRecord] = []
    marked = 0
    for record, classification in zip(pending, classify_all(pending, config)):
        logger.debug("%s classified %s", record.id, classification.value)
        if classification is not Classification.IN_SCOPE:
            continue
        to_notify.append(record)
        if ledger.mark_sent(record.id, sent_at):
            marked += 1

    return ReconcileResult(to_notify=to_notify, ledger_changed=bool(added or marked))
