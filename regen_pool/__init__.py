"""
Regen Pool - subscription pooling and monthly ecological credit retirement.

This package aggregates recurring USD contributions into a monthly pool and
retires ecological credits with it once per month, including:

- An append-only contribution ledger with exactly-once webhook handling
- Budget-constrained, cheapest-first sell order selection
- A balanced carbon / biodiversity credit mix
- Protocol fee split with REGEN acquisition and burn providers
- Exact per-contributor attribution of every retirement

Ledgers are JSON documents on disk written atomically under file locks, so
concurrent runs on one host never double-retire a month.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from regen_pool.config import Settings, get_settings
from regen_pool.orchestrator import MonthlyBatchExecutor, build_executor
from regen_pool.services.contributions import ContributionLedger
from regen_pool.services.executions import ExecutionLedger
from regen_pool.strategies.abstract import AcquisitionProvider, BurnProvider
from regen_pool.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Orchestration
    "MonthlyBatchExecutor",
    "build_executor",
    # Ledgers
    "ContributionLedger",
    "ExecutionLedger",
    # Provider abstractions
    "AcquisitionProvider",
    "BurnProvider",
    # Logging
    "configure_logging",
    "get_logger",
]
