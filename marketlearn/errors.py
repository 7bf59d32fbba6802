"""Exception types raised by the learning core and its adapters."""


class MarketLearnError(Exception):
    """Base class for all errors raised by marketlearn."""


class PersistenceError(MarketLearnError):
    """A collection or document could not be written to the store."""


class StoreError(MarketLearnError):
    """Raised by storage adapters."""


class StoreReadError(StoreError):
    """Stored data exists but cannot be read or decoded."""


class StoreWriteError(StoreError):
    """Stored data could not be written."""


class CollaboratorUnavailable(MarketLearnError):
    """No external provider is selected, or the selected one failed or timed out."""
