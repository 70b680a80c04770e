"""
Infrastructure package for the regen pool.

Holds the file-backed pieces: named locks, the versioned JSON document store,
and the collaborator interfaces (signer, market data, confirmation).
"""

from regen_pool.infrastructure.clients import (
    ConfirmationLookup,
    ConfirmationService,
    JsonFileMarketDataService,
    MarketDataService,
    PollingConfirmationService,
    SignerService,
    UnconfiguredSigner,
)
from regen_pool.infrastructure.json_store import JsonDocumentStore
from regen_pool.infrastructure.locks import FileNamedLock, LockHandle, NamedLock

__all__ = [
    "ConfirmationLookup",
    "ConfirmationService",
    "JsonFileMarketDataService",
    "MarketDataService",
    "PollingConfirmationService",
    "SignerService",
    "UnconfiguredSigner",
    "JsonDocumentStore",
    "FileNamedLock",
    "LockHandle",
    "NamedLock",
]
