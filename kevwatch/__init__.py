"""KEVWatch — notify once per relevant Known Exploited Vulnerability.

This package provides the core logic for fetching the CISA KEV feed,
matching entries against a watchlist, tracking which entries have already
been notified, and sending the resulting batch.
"""

__version__ = "0.1.0"
