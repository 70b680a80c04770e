"""
Contribution ledger: append-only record of what each user paid into the pool.

Every mutation runs inside the store's exclusive section, so concurrent
webhook deliveries carrying the same `external_event_id` produce exactly one
record; the losers get the existing record back with `duplicate=True`.
Summaries are derived on read and never persisted.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from regen_pool.config import Settings
from regen_pool.domain.models import (
    ContributionInput,
    ContributionReceipt,
    ContributionRecord,
    MonthlyContributorAggregate,
    MonthlyPoolSummary,
    UserContributionSummary,
    UserMonthlyContribution,
)
from regen_pool.domain.units import (
    month_of,
    normalize_timestamp,
    to_iso,
    usd_to_cents,
    utc_now,
    validate_month,
)
from regen_pool.errors import ValidationError
from regen_pool.infrastructure.json_store import JsonDocumentStore
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _clean_email(value: Optional[str]) -> Optional[str]:
    cleaned = _clean(value)
    return cleaned.lower() if cleaned else None


def resolve_user_id(contribution: ContributionInput) -> str:
    """user_id, else `customer:<id>`, else `email:<lower-cased email>`."""
    user_id = _clean(contribution.user_id)
    if user_id:
        return user_id
    customer_id = _clean(contribution.customer_id)
    if customer_id:
        return f"customer:{customer_id}"
    email = _clean_email(contribution.email)
    if email:
        return f"email:{email}"
    raise ValidationError(
        "Contribution requires at least one identifier: user_id, customer_id, or email"
    )


def resolve_amount_usd_cents(
    contribution: ContributionInput, subscription_tiers: Mapping[str, int]
) -> int:
    """Explicit cents win over a USD amount, which wins over the tier price."""
    if contribution.amount_usd_cents is not None:
        if contribution.amount_usd_cents <= 0:
            raise ValidationError("amount_usd_cents must be a positive integer")
        return contribution.amount_usd_cents
    if contribution.amount_usd is not None:
        return usd_to_cents(contribution.amount_usd)
    tier_id = _clean(contribution.tier_id)
    if tier_id:
        if tier_id not in subscription_tiers:
            raise ValidationError(f"Unknown tier '{tier_id}'")
        return subscription_tiers[tier_id]
    raise ValidationError(
        "Provide one of amount_usd_cents, amount_usd, or tier_id to determine contribution amount"
    )


def summarize_user(user_id: str, records: List[ContributionRecord]) -> UserContributionSummary:
    ordered = sorted(records, key=lambda record: record.contributed_at)
    by_month: Dict[str, List[int]] = {}
    for record in ordered:
        counts = by_month.setdefault(record.month, [0, 0])
        counts[0] += 1
        counts[1] += record.amount_usd_cents

    latest = ordered[-1] if ordered else None
    return UserContributionSummary(
        user_id=user_id,
        email=latest.email if latest else None,
        customer_id=latest.customer_id if latest else None,
        contribution_count=len(ordered),
        total_usd_cents=sum(record.amount_usd_cents for record in ordered),
        last_contribution_at=latest.contributed_at if latest else None,
        by_month=[
            UserMonthlyContribution(month=month, contribution_count=count, total_usd_cents=total)
            for month, (count, total) in sorted(by_month.items())
        ],
    )


def summarize_month(month: str, records: List[ContributionRecord]) -> MonthlyPoolSummary:
    in_month = [record for record in records if record.month == month]

    # Insertion order of the dict is first appearance; the sort below is stable.
    contributors: Dict[str, Dict[str, Any]] = {}
    for record in in_month:
        entry = contributors.setdefault(
            record.user_id,
            {
                "user_id": record.user_id,
                "email": record.email,
                "customer_id": record.customer_id,
                "contribution_count": 0,
                "total_usd_cents": 0,
            },
        )
        entry["contribution_count"] += 1
        entry["total_usd_cents"] += record.amount_usd_cents

    ranked = sorted(contributors.values(), key=lambda entry: -entry["total_usd_cents"])
    return MonthlyPoolSummary(
        month=month,
        contribution_count=len(in_month),
        unique_contributors=len(ranked),
        total_usd_cents=sum(record.amount_usd_cents for record in in_month),
        last_contribution_at=max((record.contributed_at for record in in_month), default=None),
        contributors=[MonthlyContributorAggregate(**entry) for entry in ranked],
    )


class ContributionLedger:
    """
    Parameters
    ----------
    store : JsonDocumentStore
        Backing document store of `ContributionRecord`s.
    subscription_tiers : mapping
        Tier id to monthly price in cents, used when a contribution only names a tier.
    clock : callable
        Source of "now" for contributions without a timestamp.
    """

    def __init__(
        self,
        store: JsonDocumentStore[ContributionRecord],
        subscription_tiers: Optional[Mapping[str, int]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.subscription_tiers = dict(subscription_tiers or {})
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContributionLedger":
        store = JsonDocumentStore(
            settings.resolved_contributions_path,
            ContributionRecord,
            lock_wait_seconds=settings.store_lock_wait_seconds,
            lock_retry_seconds=settings.store_lock_retry_seconds,
            lock_stale_seconds=settings.store_lock_stale_seconds,
        )
        return cls(store, subscription_tiers=settings.subscription_tiers)

    async def record_contribution(
        self, contribution: Union[ContributionInput, Mapping[str, Any]]
    ) -> ContributionReceipt:
        """
        Append a contribution, or return the existing one for a repeated event id.

        Raises
        ------
        ValidationError
            No identifier, no usable amount, an unknown tier, or a bad timestamp.
        """
        if not isinstance(contribution, ContributionInput):
            try:
                contribution = ContributionInput.model_validate(contribution)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid contribution: {exc}") from exc

        event_id = _clean(contribution.external_event_id)
        build_error: Optional[ValidationError] = None
        try:
            candidate = self._build_record(contribution, event_id)
        except ValidationError as exc:
            # A redelivered event resolves to its stored record even if it no longer validates.
            if not event_id:
                raise
            candidate, build_error = None, exc

        def apply(records: List[ContributionRecord]):
            if event_id:
                for existing in records:
                    if existing.external_event_id == event_id:
                        return None, (existing, True, records)
            if build_error is not None:
                raise build_error
            updated = sorted([*records, candidate], key=lambda record: record.contributed_at)
            return updated, (candidate, False, updated)

        record, duplicate, records = await self.store.with_exclusive_state(apply)

        if duplicate:
            log.info(
                f"[CONTRIBUTION DUPLICATE] {event_id}",
                extra={"external_event_id": event_id, "record_id": record.id},
            )
        else:
            log.info(
                f"[CONTRIBUTION] {record.user_id} {record.amount_usd_cents}c",
                extra={
                    "record_id": record.id,
                    "month": record.month,
                    "amount_usd_cents": record.amount_usd_cents,
                },
            )

        return ContributionReceipt(
            record=record,
            duplicate=duplicate,
            user_summary=summarize_user(
                record.user_id, [item for item in records if item.user_id == record.user_id]
            ),
            month_summary=summarize_month(record.month, records),
        )

    def _build_record(
        self, contribution: ContributionInput, event_id: Optional[str]
    ) -> ContributionRecord:
        user_id = resolve_user_id(contribution)
        amount = resolve_amount_usd_cents(contribution, self.subscription_tiers)
        raw_timestamp = _clean(contribution.contributed_at)
        contributed_at = (
            normalize_timestamp(raw_timestamp) if raw_timestamp else to_iso(self._clock())
        )
        return ContributionRecord(
            id=f"contrib_{uuid.uuid4()}",
            user_id=user_id,
            email=_clean_email(contribution.email),
            customer_id=_clean(contribution.customer_id),
            subscription_id=_clean(contribution.subscription_id),
            external_event_id=event_id,
            tier_id=_clean(contribution.tier_id),
            amount_usd_cents=amount,
            contributed_at=contributed_at,
            month=month_of(contributed_at),
            source=contribution.source,
            metadata=contribution.metadata or None,
        )

    async def list_records(self, month: Optional[str] = None) -> List[ContributionRecord]:
        records = await self.store.read_state()
        if month is not None:
            validate_month(month)
            records = [record for record in records if record.month == month]
        return records

    async def get_monthly_summary(self, month: str) -> MonthlyPoolSummary:
        validate_month(month)
        return summarize_month(month, await self.store.read_state())

    async def get_user_summary(
        self,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[UserContributionSummary]:
        """Look a user up by id, else customer id, else email. None when unknown."""
        user_id = _clean(user_id)
        customer_id = _clean(customer_id)
        email = _clean_email(email)
        if not (user_id or customer_id or email):
            raise ValidationError("Provide one identifier: user_id, customer_id, or email")

        records = await self.store.read_state()
        if user_id:
            matches = [record for record in records if record.user_id == user_id]
        elif customer_id:
            matches = [record for record in records if record.customer_id == customer_id]
        else:
            matches = [record for record in records if record.email == email]

        if not matches:
            return None
        return summarize_user(user_id or matches[0].user_id, matches)

    async def list_available_months(self) -> List[str]:
        records = await self.store.read_state()
        return sorted({record.month for record in records}, reverse=True)


__all__ = [
    "ContributionLedger",
    "resolve_user_id",
    "resolve_amount_usd_cents",
    "summarize_user",
    "summarize_month",
]
