"""
Contributor attribution: who gets credit for which slice of a monthly retirement.

Each contributor's share is their contribution over the pool total. Every
quantity (share in ppm, budget cents, cost micro, credit quantity micro) is
apportioned with the largest-remainder method, so the parts always add up to
the whole:

1. give each contributor floor(amount * weight / total);
2. hand the leftover units out one at a time, largest fractional remainder
   first; ties go to the larger contribution, then the smaller user id.
"""

from __future__ import annotations

from typing import List, Sequence

from regen_pool.domain.models import ContributorAttribution, MonthlyContributorAggregate
from regen_pool.domain.units import PPM
from regen_pool.errors import ValidationError


def apportion(amount: int, weights: Sequence[int], tie_keys: Sequence[tuple]) -> List[int]:
    """
    Split integer `amount` proportionally to `weights` with exact sum.

    Parameters
    ----------
    amount : int
        Non-negative total to split.
    weights : sequence of int
        Non-negative weights with a positive sum.
    tie_keys : sequence of tuple
        Sort keys deciding who receives a leftover unit when remainders tie.
    """
    total_weight = sum(weights)
    if total_weight <= 0:
        raise ValidationError("weights must have a positive sum")
    if amount < 0:
        raise ValidationError("amount to apportion must be non-negative")

    parts = [amount * weight // total_weight for weight in weights]
    remainders = [amount * weight % total_weight for weight in weights]
    leftover = amount - sum(parts)

    ranked = sorted(range(len(weights)), key=lambda i: (-remainders[i], tie_keys[i]))
    for index in ranked[:leftover]:
        parts[index] += 1
    return parts


def build_contributor_attributions(
    contributors: Sequence[MonthlyContributorAggregate],
    total_contribution_usd_cents: int,
    applied_budget_usd_cents: int,
    total_cost_micro: int,
    retired_quantity_micro: int,
    payment_denom: str,
) -> List[ContributorAttribution]:
    """
    Attribute the applied budget, spend and retired quantity to contributors.

    Returns an empty list when nobody contributed.

    Raises
    ------
    ValidationError
        If contributor totals do not add up to `total_contribution_usd_cents`,
        or any amount is negative.
    """
    if not contributors or total_contribution_usd_cents <= 0:
        return []

    weights = [item.total_usd_cents for item in contributors]
    if sum(weights) != total_contribution_usd_cents:
        raise ValidationError(
            f"contributor totals ({sum(weights)}) do not match "
            f"total_contribution_usd_cents ({total_contribution_usd_cents})"
        )
    if min(applied_budget_usd_cents, total_cost_micro, retired_quantity_micro) < 0:
        raise ValidationError("attributed amounts must be non-negative")

    tie_keys = [(-item.total_usd_cents, item.user_id) for item in contributors]
    shares = apportion(PPM, weights, tie_keys)
    budgets = apportion(applied_budget_usd_cents, weights, tie_keys)
    costs = apportion(total_cost_micro, weights, tie_keys)
    quantities = apportion(retired_quantity_micro, weights, tie_keys)

    return [
        ContributorAttribution(
            user_id=item.user_id,
            email=item.email,
            customer_id=item.customer_id,
            share_ppm=shares[i],
            contribution_usd_cents=item.total_usd_cents,
            attributed_budget_usd_cents=budgets[i],
            attributed_cost_micro=costs[i],
            attributed_quantity_micro=quantities[i],
            payment_denom=payment_denom,
        )
        for i, item in enumerate(contributors)
    ]


__all__ = ["apportion", "build_contributor_attributions"]
