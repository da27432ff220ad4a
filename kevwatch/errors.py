"""Exception types raised at the I/O boundaries of a KEVWatch run."""


class KevWatchError(Exception):
    """Base class for all KEVWatch errors."""


class FetchError(KevWatchError):
    """The feed could not be downloaded or its payload is malformed."""


class ConfigError(KevWatchError):
    """The configuration file exists but cannot be parsed or validated."""


class PersistenceError(KevWatchError):
    """The ledger file cannot be read or written."""


class NotifyError(KevWatchError):
    """A notification transport failed to deliver the batch."""
