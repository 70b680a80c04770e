"""
Services package for the regen pool.

Ledgers and the pure planning steps of a monthly batch: contribution
accounting, order selection, credit mix, protocol fee and attribution,
plus the execution and reconciliation run audit trails.
"""

from regen_pool.services.attribution import build_contributor_attributions
from regen_pool.services.contributions import ContributionLedger
from regen_pool.services.credit_mix import select_orders_with_policy
from regen_pool.services.executions import ExecutionLedger
from regen_pool.services.fee import calculate_protocol_fee
from regen_pool.services.order_selector import OrderSelector, select_from_orders
from regen_pool.services.reconciliation_runs import ReconciliationRunLedger

__all__ = [
    "build_contributor_attributions",
    "ContributionLedger",
    "select_orders_with_policy",
    "ExecutionLedger",
    "calculate_protocol_fee",
    "OrderSelector",
    "select_from_orders",
    "ReconciliationRunLedger",
]
