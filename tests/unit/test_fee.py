from __future__ import annotations

import pytest

from regen_pool.errors import ValidationError
from regen_pool.services.fee import calculate_protocol_fee

GROSS_CENTS = 2_500
DEFAULT_FEE_BPS = 1_000
EXPECTED_FEE_CENTS = 250
EXPECTED_FEE_MICRO = 2_500_000


def test_default_fee_takes_ten_percent() -> None:
    fee = calculate_protocol_fee(GROSS_CENTS, DEFAULT_FEE_BPS)

    assert fee.fee_usd_cents == EXPECTED_FEE_CENTS
    assert fee.fee_micro == EXPECTED_FEE_MICRO
    assert fee.fee_denom == "USDC"
    assert fee.credit_budget_usd_cents == GROSS_CENTS - EXPECTED_FEE_CENTS


def test_fee_is_floored_and_credit_budget_absorbs_rounding() -> None:
    fee = calculate_protocol_fee(999, DEFAULT_FEE_BPS)

    assert fee.fee_usd_cents == 99
    assert fee.credit_budget_usd_cents == 900
    assert fee.fee_usd_cents + fee.credit_budget_usd_cents == fee.gross_budget_usd_cents


@pytest.mark.parametrize(("fee_bps", "expected_fee"), [(0, 0), (10_000, GROSS_CENTS), (1, 0), (8_000, 2_000)])
def test_fee_bounds(fee_bps: int, expected_fee: int) -> None:
    fee = calculate_protocol_fee(GROSS_CENTS, fee_bps)

    assert fee.fee_usd_cents == expected_fee
    assert fee.credit_budget_usd_cents == GROSS_CENTS - expected_fee


def test_zero_gross_budget_is_allowed() -> None:
    fee = calculate_protocol_fee(0, DEFAULT_FEE_BPS)

    assert fee.fee_usd_cents == 0
    assert fee.credit_budget_usd_cents == 0


@pytest.mark.parametrize(
    ("gross", "fee_bps"),
    [(-1, DEFAULT_FEE_BPS), (GROSS_CENTS, -1), (GROSS_CENTS, 10_001), (GROSS_CENTS, True), (12.5, 100)],
)
def test_invalid_inputs_raise(gross, fee_bps) -> None:
    with pytest.raises(ValidationError):
        calculate_protocol_fee(gross, fee_bps)
