"""Protocol fee split: a basis-point cut of the gross pool before credits are bought."""

from __future__ import annotations

from regen_pool.domain.models import ProtocolFeeBreakdown
from regen_pool.domain.units import BPS_DENOMINATOR, cents_to_micro
from regen_pool.errors import ValidationError


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def calculate_protocol_fee(
    gross_budget_usd_cents: int,
    fee_bps: int,
    payment_denom: str = "USDC",
) -> ProtocolFeeBreakdown:
    """
    Split `gross_budget_usd_cents` into the protocol fee and the credit budget.

    The fee is floored to whole cents, so the credit budget absorbs rounding.

    Raises
    ------
    ValidationError
        If the gross budget is not a non-negative integer or `fee_bps` is not
        an integer in [0, 10000].
    """
    if not _is_int(gross_budget_usd_cents) or gross_budget_usd_cents < 0:
        raise ValidationError("gross_budget_usd_cents must be a non-negative integer")
    if not _is_int(fee_bps) or not 0 <= fee_bps <= BPS_DENOMINATOR:
        raise ValidationError("fee_bps must be an integer between 0 and 10000")

    fee_cents = gross_budget_usd_cents * fee_bps // BPS_DENOMINATOR
    return ProtocolFeeBreakdown(
        fee_bps=fee_bps,
        gross_budget_usd_cents=gross_budget_usd_cents,
        fee_usd_cents=fee_cents,
        fee_micro=cents_to_micro(fee_cents),
        fee_denom=payment_denom,
        credit_budget_usd_cents=gross_budget_usd_cents - fee_cents,
    )


__all__ = ["calculate_protocol_fee"]
