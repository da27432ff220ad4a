"""Email notification provider over SMTP."""

import logging
import smtplib
from collections.abc import Sequence
from email.mime.text import MIMEText

from ..errors import NotifyError
from ..models import VulnerabilityRecord
from ..report import render_text, subject_line
from .base import NotificationProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class EmailProvider(NotificationProvider):
    """Send the batch as one plain-text email.

    Args:
        smtp_server: SMTP host.
        smtp_port: SMTP port.
        email_from: Sender address.
        recipients: Recipient addresses.
        auth_type: ``none``, ``tls`` (STARTTLS), or ``ssl`` (implicit TLS).
        smtp_user: Login user, used with ``tls``/``ssl``.
        smtp_pass: Login password, used with ``tls``/``ssl``.
        subject_prefix: Prefix for the subject line.
    """

    name = "email"

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        email_from: str,
        recipients: list[str],
        auth_type: str = "none",
        smtp_user: str | None = None,
        smtp_pass: str | None = None,
        subject_prefix: str = "[KEVWatch]",
    ):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.email_from = email_from
        self.recipients = recipients
        self.auth_type = auth_type
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.subject_prefix = subject_prefix

    def build_message(self, records: Sequence[VulnerabilityRecord]) -> MIMEText:
        """Build the email message for ``records``."""
        msg = MIMEText(render_text(records), "plain", "utf-8")
        msg["Subject"] = subject_line(records, self.subject_prefix)
        msg["From"] = self.email_from
        msg["To"] = ", ".join(self.recipients)
        return msg

    def _connect(self) -> smtplib.SMTP:
        if self.auth_type == "ssl":
            return smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, timeout=DEFAULT_TIMEOUT)
        server = smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=DEFAULT_TIMEOUT)
        if self.auth_type == "tls":
            try:
                server.starttls()
            except (smtplib.SMTPException, OSError):
                server.close()
                raise
        return server

    def send(self, records: Sequence[VulnerabilityRecord]) -> None:
        """Send one email listing the whole batch.

        Raises:
            NotifyError: on any SMTP or connection failure.
        """
        msg = self.build_message(records)
        try:
            with self._connect() as server:
                if self.auth_type in ("tls", "ssl") and self.smtp_user and self.smtp_pass:
                    server.login(self.smtp_user, self.smtp_pass)
                server.sendmail(self.email_from, self.recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"Failed to send email via {self.smtp_server}:{self.smtp_port}: {e}") from e
        logger.info("Sent email to %s: %s", ", ".join(self.recipients), msg["Subject"])
