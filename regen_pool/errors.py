"""
Error taxonomy for the regen pool.

Only validation problems (and lock timeouts) escape the orchestrator as
exceptions. Missing data and an unconfigured signer are reported as terminal
run statuses; broadcast and provider failures are recorded on the execution
record instead of being raised.
"""

from __future__ import annotations


class PoolError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PoolError, ValueError):
    """Bad caller input: month format, fee bps range, non-positive amounts."""


class ConfigurationError(PoolError):
    """A provider or collaborator is missing required configuration."""


class TransactionError(PoolError):
    """A broadcast was rejected by the chain or raised before completing."""

    def __init__(self, message: str, code: int | None = None, raw_log: str | None = None):
        super().__init__(message)
        self.code = code
        self.raw_log = raw_log


class ProviderError(PoolError):
    """An acquisition or burn provider could not complete its step."""


class LockTimeoutError(PoolError, TimeoutError):
    """A named lock could not be acquired within the bounded wait."""

    def __init__(self, lock_key: str, waited_seconds: float):
        super().__init__(
            f"Timed out acquiring lock '{lock_key}' after {waited_seconds:.3f}s"
        )
        self.lock_key = lock_key
        self.waited_seconds = waited_seconds


class StoreFormatError(PoolError):
    """A persisted ledger document is not in the expected format."""


__all__ = [
    "PoolError",
    "ValidationError",
    "ConfigurationError",
    "TransactionError",
    "ProviderError",
    "LockTimeoutError",
    "StoreFormatError",
]
