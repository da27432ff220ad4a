"""Term matching and scope classification.

Pure functions, no I/O.  A record's scope depends only on the record and
the ``MatchConfig`` for the run.
"""

import enum
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor

from .config import MatchConfig, MatchMode
from .models import VulnerabilityRecord


class Classification(str, enum.Enum):
    """Scope of a record relative to the current configuration."""

    EXCLUDED = "excluded"
    IN_SCOPE = "in-scope"
    OUT_OF_SCOPE = "out-of-scope"


def matches(term: str, field: str, mode: MatchMode = MatchMode.SUBSTRING) -> bool:
    """Check whether ``term`` occurs anywhere inside ``field``.

    No word boundaries are required, so ``java`` matches ``javascript``.
    An empty term matches every field.

    Args:
        term: Watchlist term.
        field: Record field value.
        mode: ``SUBSTRING`` folds case first, ``CASE_SENSITIVE`` does not.

    Returns:
        True if the term is contained in the field.
    """
    if mode == MatchMode.CASE_SENSITIVE:
        return term in field
    return term.lower() in field.lower()


def _any_match(terms: Iterable[str], fields: Sequence[str], mode: MatchMode) -> bool:
    return any(matches(term, field, mode) for term in terms for field in fields)


def classify(record: VulnerabilityRecord, config: MatchConfig) -> Classification:
    """Classify a record against the exclusion and vendor terms.

    Exclusion wins: a record hit by any exclusion term is ``EXCLUDED`` even
    when a vendor term also matches.

    Args:
        record: The feed entry.
        config: Terms and match mode for this run.

    Returns:
        The record's ``Classification``.
    """
    fields = list(record.text_fields())
    if _any_match(config.exclusion_terms, fields, config.match_mode):
        return Classification.EXCLUDED
    if _any_match(config.vendor_terms, fields, config.match_mode):
        return Classification.IN_SCOPE
    return Classification.OUT_OF_SCOPE


def classify_all(
    records: Sequence[VulnerabilityRecord],
    config: MatchConfig,
    max_workers: int | None = None,
) -> list[Classification]:
    """Classify a batch of records concurrently.

    Results are returned in input order.  ``classify`` shares no mutable
    state, so no locking is needed.
    """
    if len(records) < 2:
        return [classify(r, config) for r in records]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda r: classify(r, config), records))
