"""
Domain models for the regen pool.

Every persisted record is an immutable Pydantic model. Attributes are
snake_case in Python and camelCase on disk (`model_dump(by_alias=True)`), so
the JSON ledgers keep the `{version: 1, records: [...]}` layout with keys like
`amountUsdCents` and `executedAt`.

Amounts follow `regen_pool.domain.units`: cents for USD, micro units for
credits and tokens.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

CreditType = Literal["carbon", "biodiversity"]
ContributionSource = Literal["subscription", "manual", "adjustment"]
ProviderStatus = Literal["planned", "executed", "skipped", "failed"]
BatchExecutionStatus = Literal["success", "failed", "dry_run"]
RunStatus = Literal[
    "success",
    "dry_run",
    "no_contributions",
    "no_orders",
    "wallet_not_configured",
    "already_executed",
    "failed",
]
ReconciliationRunStatus = Literal["in_progress", "completed", "blocked", "failed"]


class LedgerModel(BaseModel):
    """Base for records: frozen, camelCase aliases, accepts either spelling on input."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Contributions
# ---------------------------------------------------------------------------


class ContributionInput(LedgerModel):
    """Billing event as handed to the ledger; identity and amount are resolved later."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    external_event_id: Optional[str] = None
    tier_id: Optional[str] = None
    amount_usd: Optional[Decimal] = None
    amount_usd_cents: Optional[int] = None
    contributed_at: Optional[str] = None
    source: ContributionSource = "subscription"
    metadata: Optional[Dict[str, str]] = None


class ContributionRecord(LedgerModel):
    id: str
    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    external_event_id: Optional[str] = None
    tier_id: Optional[str] = None
    amount_usd_cents: int = Field(..., gt=0)
    contributed_at: str
    month: str
    source: ContributionSource = "subscription"
    metadata: Optional[Dict[str, str]] = None


class UserMonthlyContribution(LedgerModel):
    month: str
    contribution_count: int
    total_usd_cents: int


class UserContributionSummary(LedgerModel):
    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
    contribution_count: int
    total_usd_cents: int
    last_contribution_at: Optional[str] = None
    by_month: List[UserMonthlyContribution] = Field(default_factory=list)


class MonthlyContributorAggregate(LedgerModel):
    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
    contribution_count: int
    total_usd_cents: int


class MonthlyPoolSummary(LedgerModel):
    month: str
    contribution_count: int
    unique_contributors: int
    total_usd_cents: int
    last_contribution_at: Optional[str] = None
    contributors: List[MonthlyContributorAggregate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _totals_match(self) -> "MonthlyPoolSummary":
        contributor_total = sum(item.total_usd_cents for item in self.contributors)
        if contributor_total != self.total_usd_cents:
            raise ValueError(
                f"contributor totals ({contributor_total}) do not match pool total "
                f"({self.total_usd_cents})"
            )
        return self


class ContributionReceipt(LedgerModel):
    record: ContributionRecord
    duplicate: bool
    user_summary: UserContributionSummary
    month_summary: MonthlyPoolSummary


# ---------------------------------------------------------------------------
# Market and order selection
# ---------------------------------------------------------------------------


class SellOrder(LedgerModel):
    """An open marketplace offer; `ask_amount_micro` is the price of one whole credit."""

    id: str
    batch_denom: str
    credit_type_abbrev: str
    quantity_micro: int = Field(..., ge=0)
    ask_amount_micro: int = Field(..., gt=0)
    ask_denom: str
    expiration: Optional[datetime] = None
    disable_auto_retire: bool = False


class SelectedOrder(LedgerModel):
    sell_order_id: str
    batch_denom: str
    quantity_micro: int = Field(..., gt=0)
    unit_price_micro: int = Field(..., gt=0)
    ask_denom: str
    cost_micro: int = Field(..., ge=0)


class BudgetOrderSelection(LedgerModel):
    orders: List[SelectedOrder] = Field(default_factory=list)
    total_quantity_micro: int = 0
    total_cost_micro: int = 0
    budget_micro: int = 0
    remaining_budget_micro: int = 0
    payment_denom: str
    exhausted_budget: bool = False

    @model_validator(mode="after")
    def _totals_consistent(self) -> "BudgetOrderSelection":
        if self.total_cost_micro != sum(order.cost_micro for order in self.orders):
            raise ValueError("total_cost_micro must equal the sum of order costs")
        if self.total_quantity_micro != sum(order.quantity_micro for order in self.orders):
            raise ValueError("total_quantity_micro must equal the sum of order quantities")
        if self.total_cost_micro > self.budget_micro:
            raise ValueError("selection cost exceeds the requested budget")
        return self

    @classmethod
    def empty(cls, payment_denom: str, budget_micro: int = 0) -> "BudgetOrderSelection":
        return cls(
            payment_denom=payment_denom,
            budget_micro=budget_micro,
            remaining_budget_micro=budget_micro,
        )


class CreditMixAllocation(LedgerModel):
    credit_type: CreditType
    budget_micro: int
    spent_micro: int
    selected_quantity_micro: int
    order_count: int


class CreditMixSummary(LedgerModel):
    policy: str
    strategy: str
    allocations: List[CreditMixAllocation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Fee, attribution, providers
# ---------------------------------------------------------------------------


class ProtocolFeeBreakdown(LedgerModel):
    fee_bps: int
    gross_budget_usd_cents: int
    fee_usd_cents: int
    fee_micro: int
    fee_denom: str
    credit_budget_usd_cents: int

    @model_validator(mode="after")
    def _split_is_complete(self) -> "ProtocolFeeBreakdown":
        if self.fee_usd_cents + self.credit_budget_usd_cents != self.gross_budget_usd_cents:
            raise ValueError("fee and credit budget must add up to the gross budget")
        return self


class ContributorAttribution(LedgerModel):
    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
    share_ppm: int
    contribution_usd_cents: int
    attributed_budget_usd_cents: int
    attributed_cost_micro: int
    attributed_quantity_micro: int
    payment_denom: str


class RegenAcquisitionRecord(LedgerModel):
    provider: str
    status: ProviderStatus
    spend_micro: int
    spend_denom: str
    estimated_regen_micro: int
    acquired_regen_micro: Optional[int] = None
    tx_hash: Optional[str] = None
    message: str


class RegenBurnRecord(LedgerModel):
    provider: str
    status: ProviderStatus
    amount_micro: int
    denom: str = "uregen"
    burn_address: Optional[str] = None
    tx_hash: Optional[str] = None
    message: str


# ---------------------------------------------------------------------------
# Execution ledger and orchestration
# ---------------------------------------------------------------------------


class BatchExecutionRecord(LedgerModel):
    id: str
    month: str
    credit_type: Optional[CreditType] = None
    dry_run: bool
    status: BatchExecutionStatus
    reason: str
    budget_usd_cents: int
    spent_micro: int
    spent_denom: str
    retired_quantity_micro: int
    protocol_fee: Optional[ProtocolFeeBreakdown] = None
    credit_mix: Optional[CreditMixSummary] = None
    regen_acquisition: Optional[RegenAcquisitionRecord] = None
    regen_burn: Optional[RegenBurnRecord] = None
    attributions: Optional[List[ContributorAttribution]] = None
    tx_hash: Optional[str] = None
    block_height: Optional[int] = None
    retirement_id: Optional[str] = None
    error: Optional[str] = None
    executed_at: str


class RunMonthlyBatchInput(LedgerModel):
    month: str
    credit_type: Optional[CreditType] = None
    payment_denom: str = "USDC"
    max_budget_usd: Optional[Decimal] = None
    jurisdiction: Optional[str] = None
    reason: Optional[str] = None
    dry_run: bool = True
    force: bool = False


class RunMonthlyBatchResult(LedgerModel):
    status: RunStatus
    month: str
    credit_type: Optional[CreditType] = None
    budget_usd_cents: int = 0
    planned_quantity_micro: int = 0
    planned_cost_micro: int = 0
    planned_cost_denom: str
    protocol_fee: Optional[ProtocolFeeBreakdown] = None
    credit_mix: Optional[CreditMixSummary] = None
    regen_acquisition: Optional[RegenAcquisitionRecord] = None
    regen_burn: Optional[RegenBurnRecord] = None
    attributions: Optional[List[ContributorAttribution]] = None
    tx_hash: Optional[str] = None
    block_height: Optional[int] = None
    retirement_id: Optional[str] = None
    message: str
    execution_record: Optional[BatchExecutionRecord] = None


class ReconciliationResult(LedgerModel):
    """Outcome of a guarded run: a preflight verdict, or the batch status when it ran."""

    batch_status: str
    month: str
    credit_type: Optional[CreditType] = None
    execution_mode: Literal["live", "dry_run"]
    message: str
    latest_execution: Optional[BatchExecutionRecord] = None
    batch_result: Optional[RunMonthlyBatchResult] = None
    run_id: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.batch_status.startswith("blocked_")


class ReconciliationRunRecord(LedgerModel):
    """One guarded reconciliation attempt; `finished_at` is unset while in progress."""

    id: str
    month: str
    credit_type: Optional[CreditType] = None
    execution_mode: Literal["live", "dry_run"]
    preflight_only: bool = False
    force: bool = False
    status: ReconciliationRunStatus
    batch_status: str
    message: Optional[str] = None
    error: Optional[str] = None
    started_at: str
    finished_at: Optional[str] = None


class MonthlyStatus(LedgerModel):
    month: str
    credit_type: Optional[CreditType] = None
    contribution_count: int
    unique_contributors: int
    gross_budget_usd_cents: int
    protocol_fee: ProtocolFeeBreakdown
    latest_execution: Optional[BatchExecutionRecord] = None
    latest_success: Optional[BatchExecutionRecord] = None
    ready_for_execution: bool
    recommendation: str


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class BroadcastResult(LedgerModel):
    code: int
    tx_hash: str = ""
    height: Optional[int] = None
    raw_log: str = ""


class RetirementConfirmation(LedgerModel):
    retirement_id: str
    tx_hash: Optional[str] = None
    block_height: Optional[int] = None


class LockMetadata(LedgerModel):
    lock_key: str
    token: str
    pid: int
    acquired_at: datetime
    expires_at: datetime


__all__ = [
    "CreditType",
    "ContributionSource",
    "ProviderStatus",
    "BatchExecutionStatus",
    "RunStatus",
    "LedgerModel",
    "ContributionInput",
    "ContributionRecord",
    "UserMonthlyContribution",
    "UserContributionSummary",
    "MonthlyContributorAggregate",
    "MonthlyPoolSummary",
    "ContributionReceipt",
    "SellOrder",
    "SelectedOrder",
    "BudgetOrderSelection",
    "CreditMixAllocation",
    "CreditMixSummary",
    "ProtocolFeeBreakdown",
    "ContributorAttribution",
    "RegenAcquisitionRecord",
    "RegenBurnRecord",
    "BatchExecutionRecord",
    "RunMonthlyBatchInput",
    "RunMonthlyBatchResult",
    "ReconciliationResult",
    "ReconciliationRunRecord",
    "ReconciliationRunStatus",
    "MonthlyStatus",
    "BroadcastResult",
    "RetirementConfirmation",
    "LockMetadata",
]
