"""
Domain package for the regen pool.

Exports the ledger records, planning results and fixed-point helpers used
across services, strategies and the orchestrator. Keep this package focused on
data definitions and validation concerns.
"""

from regen_pool.domain.models import (
    BatchExecutionRecord,
    BroadcastResult,
    BudgetOrderSelection,
    ContributionInput,
    ContributionReceipt,
    ContributionRecord,
    ContributorAttribution,
    CreditMixSummary,
    CreditType,
    MonthlyPoolSummary,
    MonthlyStatus,
    ReconciliationResult,
    ProtocolFeeBreakdown,
    RegenAcquisitionRecord,
    RegenBurnRecord,
    RetirementConfirmation,
    RunMonthlyBatchInput,
    RunMonthlyBatchResult,
    SelectedOrder,
    SellOrder,
)

__all__ = [
    "BatchExecutionRecord",
    "BroadcastResult",
    "BudgetOrderSelection",
    "ContributionInput",
    "ContributionReceipt",
    "ContributionRecord",
    "ContributorAttribution",
    "CreditMixSummary",
    "CreditType",
    "MonthlyPoolSummary",
    "MonthlyStatus",
    "ReconciliationResult",
    "ProtocolFeeBreakdown",
    "RegenAcquisitionRecord",
    "RegenBurnRecord",
    "RetirementConfirmation",
    "RunMonthlyBatchInput",
    "RunMonthlyBatchResult",
    "SelectedOrder",
    "SellOrder",
]
