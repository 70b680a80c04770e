"""
REGEN burn providers: send acquired REGEN to an unspendable address.

`disabled` only records that burning is off, `simulated` returns a synthetic
`sim_burn_` reference, and `live` submits a bank send from the signer's wallet
to the configured burn address.
"""

from __future__ import annotations

import uuid
from typing import Callable, Dict, List, Optional

from regen_pool.config import Settings
from regen_pool.domain.models import RegenBurnRecord
from regen_pool.errors import ConfigurationError, ProviderError
from regen_pool.infrastructure.clients import SignerService, UnconfiguredSigner
from regen_pool.strategies.abstract import AbstractBurnProvider, BurnProvider
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

NOTHING_TO_BURN_MESSAGE = "No REGEN amount available to burn."
NO_WALLET_MESSAGE = "REGEN burn failed: no wallet configured."
SIMULATED_BURN_ADDRESS = "simulated-burn-address"
BANK_SEND_TYPE_URL = "/cosmos.bank.v1beta1.MsgSend"


class DisabledBurnProvider(AbstractBurnProvider):
    name = "disabled"

    async def plan_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        return self.skipped(
            amount_micro,
            "REGEN burn provider is disabled. Set REGEN_BURN_PROVIDER to simulated or live "
            "to enable burn execution.",
        )


class SimulatedBurnProvider(AbstractBurnProvider):
    name = "simulated"

    async def plan_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        if amount_micro <= 0:
            return self.skipped(amount_micro, NOTHING_TO_BURN_MESSAGE)
        return RegenBurnRecord(
            provider=self.name,
            status="planned",
            amount_micro=amount_micro,
            burn_address=SIMULATED_BURN_ADDRESS,
            message=f"Planned simulated REGEN burn for {month}.",
        )

    async def execute_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        planned = await self.plan_burn(month, amount_micro)
        if planned.status == "skipped":
            return planned
        return planned.model_copy(
            update={
                "status": "executed",
                "tx_hash": f"sim_burn_{uuid.uuid4()}",
                "message": f"Executed simulated REGEN burn for {month}.",
            }
        )


class LiveBurnProvider(AbstractBurnProvider):
    name = "live"

    def __init__(self, signer: Optional[SignerService], burn_address: Optional[str]) -> None:
        address = (burn_address or "").strip()
        if not address:
            raise ConfigurationError(
                "REGEN_BURN_ADDRESS is required when REGEN_BURN_PROVIDER=live"
            )
        self.signer = signer or UnconfiguredSigner()
        self.burn_address = address

    async def plan_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        if amount_micro <= 0:
            return self.skipped(amount_micro, NOTHING_TO_BURN_MESSAGE)
        return RegenBurnRecord(
            provider=self.name,
            status="planned",
            amount_micro=amount_micro,
            burn_address=self.burn_address,
            message=f"Planned on-chain REGEN burn for {month}.",
        )

    async def execute_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        planned = await self.plan_burn(month, amount_micro)
        if planned.status == "skipped":
            return planned
        if not self.signer.is_configured():
            log.warning(f"[BURN FAILED] {month} no wallet", extra={"month": month})
            return planned.model_copy(update={"status": "failed", "message": NO_WALLET_MESSAGE})

        try:
            sender = await self.signer.get_address()
            result = await self.signer.sign_and_broadcast(
                [
                    {
                        "typeUrl": BANK_SEND_TYPE_URL,
                        "value": {
                            "fromAddress": sender,
                            "toAddress": self.burn_address,
                            "amount": [{"denom": "uregen", "amount": str(amount_micro)}],
                        },
                    }
                ]
            )
            if result.code != 0:
                raise ProviderError(
                    f"transaction failed (code {result.code}): {result.raw_log or 'unknown error'}"
                )
        except Exception as exc:
            log.warning(f"[BURN FAILED] {month}", extra={"month": month, "error": str(exc)})
            return planned.model_copy(
                update={"status": "failed", "message": f"REGEN burn failed: {exc}"}
            )

        return planned.model_copy(
            update={
                "status": "executed",
                "tx_hash": result.tx_hash,
                "message": f"Executed on-chain REGEN burn for {month}.",
            }
        )


def _burn_factories(
    settings: Settings, signer: Optional[SignerService]
) -> Dict[str, Callable[[], BurnProvider]]:
    """Registry of available burn providers."""
    return {
        "disabled": lambda: DisabledBurnProvider(),
        "simulated": lambda: SimulatedBurnProvider(),
        "live": lambda: LiveBurnProvider(signer, settings.burn_address),
    }


def available_burn_providers() -> List[str]:
    return ["disabled", "live", "simulated"]


def create_burn_provider(
    settings: Settings, signer: Optional[SignerService] = None
) -> BurnProvider:
    factories = _burn_factories(settings, signer)
    name = settings.burn_provider
    if name not in factories:
        raise ConfigurationError(
            f"Unknown burn provider '{name}'. Available: {', '.join(factories)}"
        )
    return factories[name]()


__all__ = [
    "DisabledBurnProvider",
    "SimulatedBurnProvider",
    "LiveBurnProvider",
    "available_burn_providers",
    "create_burn_provider",
]
