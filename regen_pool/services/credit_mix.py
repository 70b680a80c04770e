"""
Credit mix policy: how a monthly budget is split between carbon and biodiversity.

With the "balanced" policy and no explicit credit type, both markets are
quoted at the full budget. The cheaper market by average price per credit
gets 70% and the other 30%; equal prices split 50/50; a market with no
eligible orders gets nothing. Averages are compared exactly by
cross-multiplying integer cost and quantity.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Union

from regen_pool.domain.models import (
    BudgetOrderSelection,
    CreditMixAllocation,
    CreditMixSummary,
    CreditType,
)
from regen_pool.domain.units import BPS_DENOMINATOR, bank_denom
from regen_pool.services.order_selector import OrderSelector
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

SelectOrdersForBudget = Callable[
    [Optional[CreditType], int, str], Awaitable[BudgetOrderSelection]
]

PREFERRED_SHARE_BPS = 7_000
EVEN_SHARE_BPS = 5_000


def compare_average_price(first: BudgetOrderSelection, second: BudgetOrderSelection) -> int:
    """-1 if `first` is cheaper per credit, 1 if `second` is, 0 if equal."""
    left = first.total_cost_micro * second.total_quantity_micro
    right = second.total_cost_micro * first.total_quantity_micro
    return (left > right) - (left < right)


def merge_selections(
    first: BudgetOrderSelection, second: BudgetOrderSelection, budget_micro: int
) -> BudgetOrderSelection:
    total_cost = first.total_cost_micro + second.total_cost_micro
    return BudgetOrderSelection(
        orders=[*first.orders, *second.orders],
        total_quantity_micro=first.total_quantity_micro + second.total_quantity_micro,
        total_cost_micro=total_cost,
        budget_micro=budget_micro,
        remaining_budget_micro=budget_micro - total_cost,
        payment_denom=first.payment_denom or second.payment_denom,
        exhausted_budget=first.exhausted_budget and second.exhausted_budget,
    )


def _carbon_share(
    carbon: BudgetOrderSelection, biodiversity: BudgetOrderSelection
) -> Tuple[int, str]:
    carbon_available = bool(carbon.orders)
    biodiversity_available = bool(biodiversity.orders)

    if biodiversity_available and not carbon_available:
        return 0, "100% biodiversity (carbon unavailable)"
    if carbon_available and not biodiversity_available:
        return BPS_DENOMINATOR, "100% carbon (biodiversity unavailable)"
    if not carbon_available and not biodiversity_available:
        return EVEN_SHARE_BPS, "No eligible carbon or biodiversity orders"

    ordering = compare_average_price(carbon, biodiversity)
    if ordering < 0:
        return PREFERRED_SHARE_BPS, "70/30 toward carbon (cheaper average price)"
    if ordering > 0:
        return BPS_DENOMINATOR - PREFERRED_SHARE_BPS, "70/30 toward biodiversity (cheaper average price)"
    return EVEN_SHARE_BPS, "Balanced 50/50 split"


async def select_orders_with_policy(
    selector: Union[OrderSelector, SelectOrdersForBudget],
    budget_micro: int,
    payment_denom: str,
    policy: str = "balanced",
    explicit_credit_type: Optional[CreditType] = None,
) -> Tuple[BudgetOrderSelection, Optional[CreditMixSummary]]:
    """
    Plan a purchase for `budget_micro` under `policy`.

    Returns the (possibly empty) selection and, when the budget was split, a
    `CreditMixSummary` describing the split. A single-market plan has no summary.
    """
    select = selector.select_orders_for_budget if isinstance(selector, OrderSelector) else selector

    if explicit_credit_type is not None or policy == "off":
        selection = await select(explicit_credit_type, budget_micro, payment_denom)
        return selection, None

    carbon_quote, biodiversity_quote = await asyncio.gather(
        select("carbon", budget_micro, payment_denom),
        select("biodiversity", budget_micro, payment_denom),
    )
    share_bps, strategy = _carbon_share(carbon_quote, biodiversity_quote)

    carbon_budget = budget_micro * share_bps // BPS_DENOMINATOR
    biodiversity_budget = budget_micro - carbon_budget

    async def _select_or_empty(credit_type: CreditType, sub_budget: int) -> BudgetOrderSelection:
        if sub_budget <= 0:
            return BudgetOrderSelection.empty(bank_denom(payment_denom))
        return await select(credit_type, sub_budget, payment_denom)

    if carbon_quote.orders or biodiversity_quote.orders:
        carbon, biodiversity = await asyncio.gather(
            _select_or_empty("carbon", carbon_budget),
            _select_or_empty("biodiversity", biodiversity_budget),
        )
    else:
        # Both quotes came back empty at full budget; a smaller budget cannot do better.
        carbon = BudgetOrderSelection.empty(bank_denom(payment_denom), carbon_budget)
        biodiversity = BudgetOrderSelection.empty(bank_denom(payment_denom), biodiversity_budget)

    selection = merge_selections(carbon, biodiversity, budget_micro)
    summary = CreditMixSummary(
        policy=policy,
        strategy=strategy,
        allocations=[
            CreditMixAllocation(
                credit_type="carbon",
                budget_micro=carbon_budget,
                spent_micro=carbon.total_cost_micro,
                selected_quantity_micro=carbon.total_quantity_micro,
                order_count=len(carbon.orders),
            ),
            CreditMixAllocation(
                credit_type="biodiversity",
                budget_micro=biodiversity_budget,
                spent_micro=biodiversity.total_cost_micro,
                selected_quantity_micro=biodiversity.total_quantity_micro,
                order_count=len(biodiversity.orders),
            ),
        ],
    )
    log.info(
        f"[CREDIT MIX] {strategy}",
        extra={
            "policy": policy,
            "carbon_budget_micro": carbon_budget,
            "biodiversity_budget_micro": biodiversity_budget,
        },
    )
    return selection, summary


__all__ = [
    "SelectOrdersForBudget",
    "select_orders_with_policy",
    "compare_average_price",
    "merge_selections",
]
