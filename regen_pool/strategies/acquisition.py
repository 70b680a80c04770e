"""
REGEN acquisition providers: turn the protocol fee into REGEN.

- `disabled`: records that conversion is switched off; never does I/O.
- `simulated`: converts at a fixed rate and returns a synthetic reference.
- `live`: submits a swap message through the injected signer.

The conversion rate is uregen micro units per whole unit of the payment denom,
so `estimated = spend_micro * rate // 10^6`.
"""

from __future__ import annotations

import uuid
from typing import Callable, Dict, List, Optional

from regen_pool.config import Settings
from regen_pool.domain.models import RegenAcquisitionRecord
from regen_pool.domain.units import BPS_DENOMINATOR, MICRO_FACTOR, bank_denom
from regen_pool.errors import ConfigurationError, ProviderError, ValidationError
from regen_pool.infrastructure.clients import SignerService, UnconfiguredSigner
from regen_pool.strategies.abstract import AbstractAcquisitionProvider, AcquisitionProvider
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

ZERO_SPEND_MESSAGE = "Protocol fee spend is zero; no REGEN acquisition planned."
NO_WALLET_MESSAGE = "REGEN acquisition failed: no wallet configured."


def estimate_regen_micro(spend_micro: int, rate_uregen_per_unit: int) -> int:
    return spend_micro * rate_uregen_per_unit // MICRO_FACTOR


class DisabledAcquisitionProvider(AbstractAcquisitionProvider):
    name = "disabled"

    async def plan_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        return self.skipped(
            spend_micro,
            spend_denom,
            "REGEN acquisition provider is disabled. Set REGEN_ACQUISITION_PROVIDER=simulated "
            "or live to enable protocol fee swaps.",
        )


class SimulatedAcquisitionProvider(AbstractAcquisitionProvider):
    """Deterministic conversion at a fixed rate; no external calls."""

    name = "simulated"

    def __init__(self, rate_uregen_per_unit: int) -> None:
        if not isinstance(rate_uregen_per_unit, int) or rate_uregen_per_unit <= 0:
            raise ValidationError("acquisition rate must be a positive integer")
        self.rate = rate_uregen_per_unit

    async def plan_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        if spend_micro <= 0:
            return self.skipped(0, spend_denom, ZERO_SPEND_MESSAGE)
        return RegenAcquisitionRecord(
            provider=self.name,
            status="planned",
            spend_micro=spend_micro,
            spend_denom=spend_denom,
            estimated_regen_micro=estimate_regen_micro(spend_micro, self.rate),
            message=f"Planned simulated DEX acquisition for {month}.",
        )

    async def execute_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        planned = await self.plan_acquisition(month, spend_micro, spend_denom)
        if planned.status == "skipped":
            return planned
        return planned.model_copy(
            update={
                "status": "executed",
                "acquired_regen_micro": planned.estimated_regen_micro,
                "tx_hash": f"sim_dex_{uuid.uuid4()}",
                "message": f"Executed simulated DEX acquisition for {month}.",
            }
        )


class LiveAcquisitionProvider(AbstractAcquisitionProvider):
    """
    Swap through the signer's wallet.

    The swap message carries a minimum output of the estimate less
    `slippage_bps`; the estimate is reported as the acquired amount.
    Planning never touches the signer, so a missing wallet only fails execution.
    """

    name = "live"

    def __init__(
        self,
        signer: Optional[SignerService],
        rate_uregen_per_unit: int,
        slippage_bps: int = 100,
        msg_type_url: str = "/osmosis.poolmanager.v1beta1.MsgSwapExactAmountIn",
    ) -> None:
        if rate_uregen_per_unit <= 0:
            raise ValidationError("acquisition rate must be a positive integer")
        if not 0 <= slippage_bps <= BPS_DENOMINATOR:
            raise ValidationError("slippage_bps must be between 0 and 10000")
        self.signer = signer or UnconfiguredSigner()
        self.rate = rate_uregen_per_unit
        self.slippage_bps = slippage_bps
        self.msg_type_url = msg_type_url

    async def plan_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        if spend_micro <= 0:
            return self.skipped(0, spend_denom, ZERO_SPEND_MESSAGE)
        return RegenAcquisitionRecord(
            provider=self.name,
            status="planned",
            spend_micro=spend_micro,
            spend_denom=spend_denom,
            estimated_regen_micro=estimate_regen_micro(spend_micro, self.rate),
            message=f"Planned on-chain REGEN acquisition for {month}.",
        )

    async def execute_acquisition(
        self, month: str, spend_micro: int, spend_denom: str
    ) -> RegenAcquisitionRecord:
        planned = await self.plan_acquisition(month, spend_micro, spend_denom)
        if planned.status == "skipped":
            return planned
        if not self.signer.is_configured():
            log.warning(f"[ACQUISITION FAILED] {month} no wallet", extra={"month": month})
            return planned.model_copy(update={"status": "failed", "message": NO_WALLET_MESSAGE})

        min_out = planned.estimated_regen_micro * (BPS_DENOMINATOR - self.slippage_bps) // BPS_DENOMINATOR
        try:
            sender = await self.signer.get_address()
            result = await self.signer.sign_and_broadcast(
                [
                    {
                        "typeUrl": self.msg_type_url,
                        "value": {
                            "sender": sender,
                            "tokenIn": {
                                "denom": bank_denom(spend_denom),
                                "amount": str(spend_micro),
                            },
                            "tokenOutDenom": "uregen",
                            "tokenOutMinAmount": str(min_out),
                        },
                    }
                ]
            )
            if result.code != 0:
                raise ProviderError(
                    f"transaction failed (code {result.code}): {result.raw_log or 'unknown error'}"
                )
        except Exception as exc:
            log.warning(
                f"[ACQUISITION FAILED] {month}", extra={"month": month, "error": str(exc)}
            )
            return planned.model_copy(
                update={"status": "failed", "message": f"REGEN acquisition failed: {exc}"}
            )

        return planned.model_copy(
            update={
                "status": "executed",
                "acquired_regen_micro": planned.estimated_regen_micro,
                "tx_hash": result.tx_hash,
                "message": f"Executed on-chain REGEN acquisition for {month}.",
            }
        )


def _acquisition_factories(
    settings: Settings, signer: Optional[SignerService]
) -> Dict[str, Callable[[], AcquisitionProvider]]:
    """Registry of available acquisition providers."""
    return {
        "disabled": lambda: DisabledAcquisitionProvider(),
        "simulated": lambda: SimulatedAcquisitionProvider(settings.acquisition_rate),
        "live": lambda: LiveAcquisitionProvider(
            signer,
            settings.acquisition_rate,
            slippage_bps=settings.acquisition_slippage_bps,
            msg_type_url=settings.acquisition_msg_type_url,
        ),
    }


def available_acquisition_providers() -> List[str]:
    return ["disabled", "live", "simulated"]


def create_acquisition_provider(
    settings: Settings, signer: Optional[SignerService] = None
) -> AcquisitionProvider:
    factories = _acquisition_factories(settings, signer)
    name = settings.acquisition_provider
    if name not in factories:
        raise ConfigurationError(
            f"Unknown acquisition provider '{name}'. Available: {', '.join(factories)}"
        )
    return factories[name]()


__all__ = [
    "DisabledAcquisitionProvider",
    "SimulatedAcquisitionProvider",
    "LiveAcquisitionProvider",
    "available_acquisition_providers",
    "create_acquisition_provider",
    "estimate_regen_micro",
]
