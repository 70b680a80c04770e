"""
Budget-constrained sell-order selection.

Given a spend budget in micro units of the payment denom, buy the cheapest
eligible credits first until the budget cannot afford another micro unit.
All arithmetic is integer:

    take = min(floor(remaining * 10^6 / price), available)
    cost = ceil(take * price / 10^6)

so a selection never spends more than its budget.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from regen_pool.domain.models import BudgetOrderSelection, CreditType, SelectedOrder, SellOrder
from regen_pool.domain.units import MICRO_FACTOR, bank_denom, ceil_div, utc_now
from regen_pool.errors import ValidationError
from regen_pool.infrastructure.clients import MarketDataService
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

CARBON_ABBREV = "C"


def matches_credit_type(order: SellOrder, credit_type: Optional[CreditType]) -> bool:
    if credit_type is None:
        return True
    is_carbon = order.credit_type_abbrev == CARBON_ABBREV
    return is_carbon if credit_type == "carbon" else not is_carbon


def is_eligible(
    order: SellOrder,
    credit_type: Optional[CreditType],
    ask_denom: str,
    now: datetime,
) -> bool:
    if order.disable_auto_retire:
        return False
    if order.ask_denom != ask_denom:
        return False
    if order.quantity_micro <= 0:
        return False
    if order.expiration is not None:
        expiration = order.expiration
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        if expiration <= now:
            return False
    return matches_credit_type(order, credit_type)


def select_from_orders(
    orders: Iterable[SellOrder],
    credit_type: Optional[CreditType],
    budget_micro: int,
    payment_denom: str,
    now: Optional[datetime] = None,
) -> BudgetOrderSelection:
    """
    Greedy cheapest-first fill of `budget_micro` from `orders`.

    Parameters
    ----------
    orders : iterable of SellOrder
        Candidate orders; ineligible ones are filtered out here.
    credit_type : {"carbon", "biodiversity"} or None
        Restrict to one credit family; None accepts any.
    budget_micro : int
        Maximum spend, micro units of `payment_denom`.
    payment_denom : str
        Display or bank denom; orders must ask in the matching bank denom.
    now : datetime, optional
        Reference time for expiry checks.

    Returns
    -------
    BudgetOrderSelection
        Possibly empty; never raises for lack of supply.
    """
    if isinstance(budget_micro, bool) or not isinstance(budget_micro, int):
        raise ValidationError("budget_micro must be an integer")
    if budget_micro < 0:
        raise ValidationError("budget_micro must be non-negative")

    denom = bank_denom(payment_denom)
    now = now or utc_now()
    # sorted() is stable: equal prices keep feed order.
    eligible = sorted(
        (order for order in orders if is_eligible(order, credit_type, denom, now)),
        key=lambda order: order.ask_amount_micro,
    )

    remaining = budget_micro
    selected: List[SelectedOrder] = []
    exhausted = False
    for order in eligible:
        price = order.ask_amount_micro
        affordable = remaining * MICRO_FACTOR // price
        take = min(affordable, order.quantity_micro)
        if take <= 0:
            exhausted = True
            break
        cost = ceil_div(take * price, MICRO_FACTOR)
        selected.append(
            SelectedOrder(
                sell_order_id=order.id,
                batch_denom=order.batch_denom,
                quantity_micro=take,
                unit_price_micro=price,
                ask_denom=order.ask_denom,
                cost_micro=cost,
            )
        )
        remaining -= cost
        if take < order.quantity_micro:
            # Later orders cost at least as much per unit.
            exhausted = True
            break

    total_cost = budget_micro - remaining
    return BudgetOrderSelection(
        orders=selected,
        total_quantity_micro=sum(item.quantity_micro for item in selected),
        total_cost_micro=total_cost,
        budget_micro=budget_micro,
        remaining_budget_micro=remaining,
        payment_denom=denom,
        exhausted_budget=exhausted,
    )


class OrderSelector:
    """Fetches the market through `MarketDataService` and applies `select_from_orders`."""

    def __init__(
        self,
        market: MarketDataService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.market = market
        self._clock = clock

    async def select_orders_for_budget(
        self,
        credit_type: Optional[CreditType],
        budget_micro: int,
        payment_denom: str = "USDC",
    ) -> BudgetOrderSelection:
        if isinstance(budget_micro, int) and not isinstance(budget_micro, bool) and budget_micro < 0:
            raise ValidationError("budget_micro must be non-negative")
        orders = await self.market.list_sell_orders()
        selection = select_from_orders(
            orders, credit_type, budget_micro, payment_denom, now=self._clock()
        )
        log.debug(
            f"[ORDER SELECTION] {credit_type or 'any'}",
            extra={
                "credit_type": credit_type,
                "budget_micro": budget_micro,
                "order_count": len(selection.orders),
                "total_cost_micro": selection.total_cost_micro,
            },
        )
        return selection


__all__ = ["OrderSelector", "select_from_orders", "is_eligible", "matches_credit_type"]
