"""
Pytest configuration for the regen pool.

Provides fixtures for:
- Settings pointed at a per-test data directory
- Contribution, execution and reconciliation run ledgers backed by JSON files
  under tmp_path
- An executor factory wiring fake market, signer and providers
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from regen_pool.config import Settings
from regen_pool.domain.models import (
    BatchExecutionRecord,
    ContributionRecord,
    ReconciliationRunRecord,
    SellOrder,
)
from regen_pool.infrastructure.json_store import JsonDocumentStore
from regen_pool.infrastructure.locks import FileNamedLock
from regen_pool.orchestrator import MonthlyBatchExecutor
from regen_pool.services.contributions import ContributionLedger
from regen_pool.services.executions import ExecutionLedger
from regen_pool.services.order_selector import OrderSelector
from regen_pool.services.reconciliation_runs import ReconciliationRunLedger
from regen_pool.strategies.acquisition import DisabledAcquisitionProvider
from regen_pool.strategies.burn import DisabledBurnProvider
from tests.fakes import FIXED_NOW, TEST_TIERS, FakeMarket, FakeSigner, make_order


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def test_settings(data_dir: Path) -> Settings:
    """
    Settings fixture with every path under the per-test data directory.
    """
    return Settings(
        data_dir=data_dir,
        subscription_tiers=dict(TEST_TIERS),
        store_lock_retry_seconds=0.01,
        log_level="DEBUG",
    )


@pytest.fixture
def contribution_store(data_dir: Path) -> JsonDocumentStore[ContributionRecord]:
    return JsonDocumentStore(
        data_dir / "pool-contributions.json", ContributionRecord, lock_retry_seconds=0.01
    )


@pytest.fixture
def execution_store(data_dir: Path) -> JsonDocumentStore[BatchExecutionRecord]:
    return JsonDocumentStore(
        data_dir / "monthly-batch-executions.json", BatchExecutionRecord, lock_retry_seconds=0.01
    )


@pytest.fixture
def contributions(contribution_store) -> ContributionLedger:
    return ContributionLedger(contribution_store, subscription_tiers=TEST_TIERS)


@pytest.fixture
def executions(execution_store) -> ExecutionLedger:
    return ExecutionLedger(execution_store)


@pytest.fixture
def reconciliation_runs(data_dir: Path) -> ReconciliationRunLedger:
    store = JsonDocumentStore(
        data_dir / "reconciliation-runs.json", ReconciliationRunRecord, lock_retry_seconds=0.01
    )
    return ReconciliationRunLedger(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def run_lock(data_dir: Path) -> FileNamedLock:
    return FileNamedLock(data_dir / "run-locks", ttl_seconds=60, retry_interval_seconds=0.01)


@pytest.fixture
def default_orders() -> List[SellOrder]:
    """A carbon market at 2 USDC per credit and a biodiversity market at 5."""
    return [
        make_order("1", "C", ask_amount_micro=2_000_000),
        make_order("2", "BT", ask_amount_micro=5_000_000),
    ]


@pytest.fixture
def make_executor(
    contributions: ContributionLedger,
    executions: ExecutionLedger,
    reconciliation_runs: ReconciliationRunLedger,
    run_lock: FileNamedLock,
    default_orders: List[SellOrder],
) -> Callable[..., MonthlyBatchExecutor]:
    """
    Build an executor over the per-test ledgers.

    Keyword arguments override collaborators (orders, signer, acquisition,
    burn, confirmation, clock, ...).
    """

    def _factory(
        orders: Optional[Sequence[SellOrder]] = None,
        signer: Optional[FakeSigner] = None,
        clock: Callable[[], datetime] = lambda: FIXED_NOW,
        **overrides: Any,
    ) -> MonthlyBatchExecutor:
        market = FakeMarket(default_orders if orders is None else orders)
        kwargs: Dict[str, Any] = {
            "contributions": contributions,
            "executions": executions,
            "selector": OrderSelector(market, clock=clock),
            "run_lock": run_lock,
            "signer": signer or FakeSigner(),
            "acquisition": DisabledAcquisitionProvider(),
            "burn": DisabledBurnProvider(),
            "clock": clock,
            "runs": reconciliation_runs,
        }
        kwargs.update(overrides)
        return MonthlyBatchExecutor(**kwargs)

    return _factory
