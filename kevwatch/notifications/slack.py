"""Slack notification provider."""

from collections.abc import Sequence

import requests

from ..errors import NotifyError
from ..models import VulnerabilityRecord
from .base import NotificationProvider

DEFAULT_TIMEOUT = (10, 60)

# Slack rejects messages with more than 50 blocks.
MAX_RECORD_BLOCKS = 45


class SlackProvider(NotificationProvider):
    """Send the batch as one Slack webhook message.

    Uses Slack's Block Kit, one section per record.

    Args:
        webhook_url: Slack incoming webhook URL.
    """

    name = "slack"

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    def build_payload(self, records: Sequence[VulnerabilityRecord]) -> dict:
        """Build the Block Kit payload for ``records``."""
        count = len(records)
        header = f"⚠️ {count} new Known Exploited {'Vulnerability' if count == 1 else 'Vulnerabilities'}"
        blocks: list[dict] = [
            {"type": "header", "text": {"type": "plain_text", "text": header, "emoji": True}},
        ]
        for r in records[:MAX_RECORD_BLOCKS]:
            desc = self._truncate(r.description, 500)
            blocks.append(
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"*<{r.cve_url}|{r.id}>* {r.name}\n{desc}",
                    },
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Vendor:* {r.vendor}"},
                        {"type": "mrkdwn", "text": f"*Product:* {r.product}"},
                        {"type": "mrkdwn", "text": f"*Added:* {self._format_date(r.date_added)}"},
                        {"type": "mrkdwn", "text": f"*Due:* {self._format_date(r.due_date)}"},
                    ],
                }
            )
        if count > MAX_RECORD_BLOCKS:
            blocks.append(
                {"type": "section", "text": {"type": "mrkdwn", "text": f"…and {count - MAX_RECORD_BLOCKS} more."}}
            )
        blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": "KEVWatch Alert"}]})
        return {"text": header, "blocks": blocks}

    def send(self, records: Sequence[VulnerabilityRecord]) -> None:
        """Post one Slack message for the whole batch.

        Raises:
            NotifyError: if the webhook call fails.
        """
        try:
            r = requests.post(self.webhook_url, json=self.build_payload(records), timeout=DEFAULT_TIMEOUT)
            r.raise_for_status()
        except requests.RequestException as e:
            raise NotifyError(f"Slack webhook failed: {e}") from e
