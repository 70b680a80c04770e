"""
Collaborator interfaces used by the orchestrator and providers.

The signer, the marketplace feed and the retirement indexer live outside this
package. They are described here as `Protocol`s so callers can inject any
object with the right shape (a real chain client, or a fake in tests). Three
small implementations ship with the package for local use:

- `UnconfiguredSigner`: reports that no wallet is available.
- `JsonFileMarketDataService`: sell orders read from a JSON file.
- `PollingConfirmationService`: polls an async lookup a bounded number of times.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from regen_pool.domain.models import BroadcastResult, RetirementConfirmation, SellOrder
from regen_pool.errors import ConfigurationError, StoreFormatError
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

# A chain message as handed to the signer: {"typeUrl": ..., "value": {...}}
ChainMessage = Dict[str, Any]


@runtime_checkable
class SignerService(Protocol):
    """Wallet that signs and broadcasts transactions."""

    def is_configured(self) -> bool:
        ...

    async def get_address(self) -> str:
        ...

    async def sign_and_broadcast(self, messages: Sequence[ChainMessage]) -> BroadcastResult:
        """Broadcast `messages` in one transaction; code 0 means accepted."""
        ...


@runtime_checkable
class MarketDataService(Protocol):
    async def list_sell_orders(self) -> List[SellOrder]:
        ...


@runtime_checkable
class ConfirmationService(Protocol):
    async def wait_for_confirmation(self, tx_hash: str) -> Optional[RetirementConfirmation]:
        """Return the indexed retirement for `tx_hash`, or None if it never shows up."""
        ...


class UnconfiguredSigner:
    """Placeholder signer for deployments without a wallet."""

    def is_configured(self) -> bool:
        return False

    async def get_address(self) -> str:
        raise ConfigurationError("No wallet configured")

    async def sign_and_broadcast(self, messages: Sequence[ChainMessage]) -> BroadcastResult:
        raise ConfigurationError("No wallet configured")


class JsonFileMarketDataService:
    """
    Sell orders from a JSON file.

    Accepts either a bare list of orders or ``{"sellOrders": [...]}``. A missing
    file means an empty market.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def list_sell_orders(self) -> List[SellOrder]:
        return await asyncio.to_thread(self._load)

    def _load(self) -> List[SellOrder]:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            log.warning(f"[MARKET] no sell-order file at {self.path}")
            return []
        except json.JSONDecodeError as exc:
            raise StoreFormatError(f"{self.path} is not valid JSON: {exc}") from exc

        items = document.get("sellOrders") if isinstance(document, dict) else document
        if not isinstance(items, list):
            raise StoreFormatError(f"{self.path} does not contain a sell-order list")
        try:
            return [SellOrder.model_validate(item) for item in items]
        except PydanticValidationError as exc:
            raise StoreFormatError(f"{self.path} holds an invalid sell order: {exc}") from exc


ConfirmationLookup = Callable[[str], Awaitable[Optional[RetirementConfirmation]]]


class PollingConfirmationService:
    """
    Poll `lookup(tx_hash)` until it returns a confirmation.

    Lookup errors count as "not indexed yet". After `attempts` tries the
    service gives up and returns None; the caller decides what that means.
    """

    def __init__(
        self,
        lookup: ConfirmationLookup,
        attempts: int = 10,
        interval_seconds: float = 2.0,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._lookup = lookup
        self.attempts = attempts
        self.interval_seconds = interval_seconds

    async def wait_for_confirmation(self, tx_hash: str) -> Optional[RetirementConfirmation]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.interval_seconds),
            retry=retry_if_result(lambda found: found is None)
            | retry_if_exception_type(Exception),
            retry_error_callback=lambda retry_state: None,
        )
        confirmation = await retrying(self._lookup, tx_hash)
        if confirmation is None:
            log.warning(
                f"[CONFIRMATION] {tx_hash} not indexed after {self.attempts} attempts",
                extra={"tx_hash": tx_hash, "attempts": self.attempts},
            )
        return confirmation


__all__ = [
    "ChainMessage",
    "SignerService",
    "MarketDataService",
    "ConfirmationService",
    "ConfirmationLookup",
    "UnconfiguredSigner",
    "JsonFileMarketDataService",
    "PollingConfirmationService",
]
