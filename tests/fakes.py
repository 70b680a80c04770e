"""
Test doubles and shared constants for the regen pool tests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from regen_pool.domain.models import BroadcastResult, RetirementConfirmation, SellOrder
from regen_pool.services.contributions import ContributionLedger

TEST_MONTH = "2026-03"
FIXED_NOW = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)
TEST_TIERS = {"seedling": 300, "grove": 700, "canopy": 1500}


def make_order(
    order_id: str,
    abbrev: str = "C",
    quantity_micro: int = 100_000_000,
    ask_amount_micro: int = 2_000_000,
    ask_denom: str = "uusdc",
    **fields: Any,
) -> SellOrder:
    return SellOrder(
        id=order_id,
        batch_denom=f"{abbrev}01-001-20240101-20241231-{order_id}",
        credit_type_abbrev=abbrev,
        quantity_micro=quantity_micro,
        ask_amount_micro=ask_amount_micro,
        ask_denom=ask_denom,
        **fields,
    )


class FakeMarket:
    def __init__(self, orders: Optional[Sequence[SellOrder]] = None) -> None:
        self.orders = list(orders or [])
        self.calls = 0

    async def list_sell_orders(self) -> List[SellOrder]:
        self.calls += 1
        return list(self.orders)


class FakeSigner:
    """Records every broadcast; answers with `code` or raises `error`."""

    def __init__(
        self,
        configured: bool = True,
        code: int = 0,
        raw_log: str = "",
        error: Optional[Exception] = None,
        address: str = "regen1pooladdress",
    ) -> None:
        self.configured = configured
        self.code = code
        self.raw_log = raw_log
        self.error = error
        self.address = address
        self.broadcasts: List[List[Dict[str, Any]]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def get_address(self) -> str:
        return self.address

    async def sign_and_broadcast(self, messages) -> BroadcastResult:
        self.broadcasts.append(list(messages))
        if self.error is not None:
            raise self.error
        return BroadcastResult(
            code=self.code,
            tx_hash=f"TX{len(self.broadcasts):04d}",
            height=1000 + len(self.broadcasts),
            raw_log=self.raw_log,
        )


class FakeConfirmation:
    def __init__(self, retirement_id: Optional[str] = "WyRet-001") -> None:
        self.retirement_id = retirement_id
        self.lookups: List[str] = []

    async def wait_for_confirmation(self, tx_hash: str) -> Optional[RetirementConfirmation]:
        self.lookups.append(tx_hash)
        if self.retirement_id is None:
            return None
        return RetirementConfirmation(retirement_id=self.retirement_id, tx_hash=tx_hash)


async def seed_march(ledger: ContributionLedger) -> None:
    """Three contributors: canopy (15.00), grove (7.00) and seedling (3.00)."""
    for user_id, tier, day in (("alice", "canopy", 3), ("bob", "grove", 5), ("carol", "seedling", 7)):
        await ledger.record_contribution(
            {
                "user_id": user_id,
                "email": f"{user_id}@example.org",
                "tier_id": tier,
                "external_event_id": f"evt_{user_id}",
                "contributed_at": f"{TEST_MONTH}-{day:02d}T12:00:00Z",
            }
        )
