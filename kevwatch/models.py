"""Data models for KEV feed entries and their notification history.

Both models are immutable pydantic models.  ``VulnerabilityRecord`` parses
directly from the CISA KEV JSON field names (``cveID``, ``vendorProject`` …)
while also accepting the Python attribute names, so tests and callers can
construct records either way.
"""

import datetime as dt
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class VulnerabilityRecord(BaseModel):
    """One entry of the Known Exploited Vulnerabilities catalog.

    Attributes:
        id: CVE identifier, the stable unique key (e.g. ``CVE-2024-12345``).
        vendor: Vendor or project name.
        product: Affected product.
        name: Short vulnerability name.
        date_added: Date the entry was added to the catalog.
        description: Short description of the vulnerability.
        required_action: Remediation action required by CISA.
        due_date: Remediation due date, ``None`` when the feed omits it.
        notes: Free-form notes, ``None`` when the feed omits them.
        known_ransomware_campaign_use: ``Known`` / ``Unknown`` flag, shown
            in notifications but never matched against terms.
        cwes: CWE identifiers attached to the entry.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="cveID")
    vendor: str = Field(default="", alias="vendorProject")
    product: str = ""
    name: str = Field(default="", alias="vulnerabilityName")
    date_added: dt.date = Field(alias="dateAdded")
    description: str = Field(default="", alias="shortDescription")
    required_action: str = Field(default="", alias="requiredAction")
    due_date: dt.date | None = Field(default=None, alias="dueDate")
    notes: str | None = None
    known_ransomware_campaign_use: str | None = Field(default=None, alias="knownRansomwareCampaignUse")
    cwes: tuple[str, ...] = ()

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, v: Any) -> str:
        return str(v or "").strip().upper()

    @field_validator("vendor", "product", "name", "description", "required_action", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("due_date", "notes", "known_ransomware_campaign_use", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("cwes", mode="before")
    @classmethod
    def _coerce_cwes(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,) if v else ()
        return v

    def text_fields(self) -> Iterator[str]:
        """Yield the free-text fields that watchlist terms are tested against.

        Identifiers and dates are never matched.
        """
        yield self.vendor
        yield self.product
        yield self.name
        yield self.description
        yield self.required_action
        if self.notes is not None:
            yield self.notes

    @property
    def cve_url(self) -> str:
        return f"https://www.cve.org/CVERecord?id={self.id}"


class NotificationState(BaseModel):
    """Notification history of a single record identity.

    ``sent_at`` is present if and only if ``sent`` is true.

    Attributes:
        record_id: CVE identifier of the tracked record.
        sent: Whether a notification has been sent for the record.
        sent_at: When the notification was sent.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    record_id: str = Field(alias="id")
    sent: bool = False
    sent_at: dt.datetime | None = None

    @model_validator(mode="after")
    def _sent_at_iff_sent(self) -> "NotificationState":
        if self.sent != (self.sent_at is not None):
            raise ValueError("sent_at must be set if and only if sent is true")
        return self
