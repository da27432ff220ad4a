"""Plain-text rendering of a notification batch using Jinja2 templates.

The default template lives at ``kevwatch/templates/notification.txt.j2``.
"""

import datetime as dt
from collections.abc import Sequence
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import VulnerabilityRecord

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def _now_utc_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(default_for_string=False, default=False),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_text(records: Sequence[VulnerabilityRecord], generated_at: str | None = None) -> str:
    """Render the notification body for a batch of records.

    Args:
        records: Records to list, already in notification order.
        generated_at: Timestamp shown in the header.  Defaults to now.

    Returns:
        Plain-text body.
    """
    template = _environment().get_template("notification.txt.j2")
    return template.render(records=list(records), generated_at=generated_at or _now_utc_iso())


def subject_line(records: Sequence[VulnerabilityRecord], prefix: str = "[KEVWatch]") -> str:
    """Build a short subject line such as ``[KEVWatch] 2 new KEV entries: CVE-…, CVE-…``."""
    count = len(records)
    noun = "entry" if count == 1 else "entries"
    ids = ", ".join(r.id for r in records[:3])
    if count > 3:
        ids += ", …"
    return f"{prefix} {count} new KEV {noun}: {ids}".strip()
