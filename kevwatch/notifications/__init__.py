"""Notification providers for KEVWatch.

Each provider extends ``NotificationProvider`` and implements ``send``,
which delivers the whole batch of a run in one notification.

Adding a new provider requires only:
1. Create a new file in this package.
2. Subclass ``NotificationProvider``.
3. Register it in ``load_providers()``.
"""

import logging
import os

from ..config import AppConfig
from .base import NotificationProvider
from .mail import EmailProvider
from .slack import SlackProvider

logger = logging.getLogger(__name__)

__all__ = [
    "NotificationProvider",
    "EmailProvider",
    "SlackProvider",
    "load_providers",
]


def load_providers(config: AppConfig) -> list[NotificationProvider]:
    """Create the notification providers named in the configuration.

    A provider that references an unset ``$ENV_VAR`` (Slack webhook URL,
    SMTP user or password) is skipped with a warning.

    Args:
        config: Loaded application config.

    Returns:
        List of active notification providers.
    """
    providers: list[NotificationProvider] = []

    if config.email is not None:
        e = config.email
        smtp_user = _resolve_env(e.smtp_user) if e.smtp_user else None
        smtp_pass = _resolve_env(e.smtp_pass) if e.smtp_pass else None
        if (e.smtp_user and smtp_user is None) or (e.smtp_pass and smtp_pass is None):
            logger.warning("Email notifier skipped: SMTP credentials reference an unset environment variable")
        else:
            providers.append(
                EmailProvider(
                    smtp_server=e.smtp_server,
                    smtp_port=e.smtp_port,
                    email_from=e.email_from,
                    recipients=list(e.recipients),
                    auth_type=e.auth_type,
                    smtp_user=smtp_user,
                    smtp_pass=smtp_pass,
                    subject_prefix=e.subject_prefix,
                )
            )

    if config.slack is not None:
        url = _resolve_env(config.slack.url)
        if url:
            providers.append(SlackProvider(webhook_url=url))
        else:
            logger.warning("Slack notifier skipped: webhook URL %s is unset", config.slack.url)

    return providers


def _resolve_env(value: str) -> str | None:
    """Resolve ``$ENV_VAR`` references in a string.

    If the value starts with ``$``, look it up in ``os.environ``.
    Otherwise return as-is.  Returns ``None`` if the env var is unset.
    """
    if value.startswith("$"):
        return os.environ.get(value[1:])
    return value if value else None
