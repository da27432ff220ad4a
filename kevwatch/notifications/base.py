"""Abstract base class for notification providers."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ..models import VulnerabilityRecord


class NotificationProvider(ABC):
    """Base class for all KEVWatch notification providers.

    A provider receives the whole batch of a run at once, never one record
    at a time.

    Attributes:
        name: Short identifier for this provider (e.g., ``email``).
    """

    name: str = "base"

    @abstractmethod
    def send(self, records: Sequence[VulnerabilityRecord]) -> None:
        """Deliver one notification listing ``records``.

        Args:
            records: Newly in-scope records, in notification order.

        Raises:
            NotifyError: if the transport fails.
        """
        ...

    @staticmethod
    def _format_date(value) -> str:
        """Format an optional date, ``N/A`` when absent."""
        return value.isoformat() if value is not None else "N/A"

    @staticmethod
    def _truncate(text: str, limit: int) -> str:
        """Cut ``text`` to ``limit`` characters with an ellipsis."""
        return text if len(text) <= limit else text[: limit - 1] + "…"
