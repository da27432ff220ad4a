"""HTTP download and file helpers for the CISA KEV feed.

All network I/O is isolated here; the rest of the package works with
in-memory ``VulnerabilityRecord`` lists.  Every failure surfaces as a
``FetchError`` so a broken feed aborts the run before anything is
reconciled.
"""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import requests
from pydantic import ValidationError

from .errors import FetchError
from .models import VulnerabilityRecord

logger = logging.getLogger(__name__)

CISA_KEV_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"

DEFAULT_HTTP_TIMEOUT = (10, 120)  # (connect, read)


def requests_session() -> requests.Session:
    """Create a requests session with KEVWatch headers.

    Returns:
        Configured ``requests.Session``.
    """
    s = requests.Session()
    s.headers.update(
        {
            "User-Agent": "KEVWatch/0.1 (+https://github.com/)",
            "Accept": "application/json",
        }
    )
    return s


def get_json(session: requests.Session, url: str) -> Any:
    """Fetch JSON from a URL.

    Args:
        session: Requests session.
        url: URL to fetch.

    Returns:
        Parsed JSON data.

    Raises:
        FetchError: on connection errors, HTTP errors, or a non-JSON body.
    """
    try:
        r = session.get(url, timeout=DEFAULT_HTTP_TIMEOUT)
        r.raise_for_status()
        return r.json()
    except requests.RequestException as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e
    except ValueError as e:
        raise FetchError(f"Response from {url} is not valid JSON: {e}") from e


def parse_kev_payload(data: Any) -> list[VulnerabilityRecord]:
    """Turn a KEV catalog document into records.

    Entries that are not objects with a ``CVE-`` identifier, or that fail
    validation, are skipped with a warning.

    Args:
        data: Parsed KEV JSON document.

    Returns:
        Records in feed order.

    Raises:
        FetchError: if the document has no ``vulnerabilities`` list.
    """
    vulns = data.get("vulnerabilities") if isinstance(data, dict) else None
    if not isinstance(vulns, list):
        raise FetchError("KEV payload is missing the 'vulnerabilities' list")

    out: list[VulnerabilityRecord] = []
    for v in vulns:
        if not isinstance(v, dict):
            logger.warning("Skipping KEV entry that is not an object: %r", v)
            continue
        cve = str(v.get("cveID") or "").strip().upper()
        if not cve.startswith("CVE-"):
            logger.warning("Skipping KEV entry without a CVE identifier: %r", v.get("cveID"))
            continue
        try:
            out.append(VulnerabilityRecord.model_validate(v))
        except ValidationError as e:
            logger.warning("Skipping malformed KEV entry %s: %s", cve, e.errors()[0]["msg"])
    return out


def download_kev(session: requests.Session, url: str = CISA_KEV_URL) -> list[VulnerabilityRecord]:
    """Download the CISA Known Exploited Vulnerabilities catalog.

    Args:
        session: Requests session.
        url: Feed location.

    Returns:
        List of ``VulnerabilityRecord``.

    Raises:
        FetchError: if the feed is unavailable or malformed.
    """
    records = parse_kev_payload(get_json(session, url))
    logger.info("Fetched %d KEV entries from %s", len(records), url)
    return records


def load_kev_file(path: Path) -> list[VulnerabilityRecord]:
    """Load a KEV catalog saved on disk instead of downloading it.

    Raises:
        FetchError: if the file is missing, unreadable, or malformed.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FetchError(f"Could not read feed file {path}: {e}") from e
    return parse_kev_payload(data)


def save_feed(path: Path, records: Sequence[VulnerabilityRecord]) -> None:
    """Write records as a KEV-shaped JSON document (write-then-rename).

    The output can be read back with ``load_kev_file``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = {
        "count": len(records),
        "vulnerabilities": [r.model_dump(mode="json", by_alias=True) for r in records],
    }
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(doc, f, indent=2)
    tmp.replace(path)
