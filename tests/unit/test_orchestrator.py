from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from regen_pool.domain.models import RegenAcquisitionRecord, RegenBurnRecord, RunMonthlyBatchInput
from regen_pool.errors import LockTimeoutError, ValidationError
from regen_pool.orchestrator import BUY_DIRECT_TYPE_URL, run_lock_key
from regen_pool.strategies.abstract import AbstractAcquisitionProvider, AbstractBurnProvider
from regen_pool.strategies.acquisition import LiveAcquisitionProvider, SimulatedAcquisitionProvider
from regen_pool.strategies.burn import LiveBurnProvider, SimulatedBurnProvider
from tests.fakes import TEST_MONTH, FakeConfirmation, FakeSigner, seed_march

GROSS_CENTS = 2_500
FEE_CENTS = 250
CREDIT_BUDGET_MICRO = 22_500_000
PLANNED_QUANTITY_MICRO = 9_225_000
REGEN_FROM_FEE = 5_000_000


class _ExplodingAcquisition(AbstractAcquisitionProvider):
    name = "exploding"

    async def plan_acquisition(self, month: str, spend_micro: int, spend_denom: str) -> RegenAcquisitionRecord:
        return RegenAcquisitionRecord(
            provider=self.name,
            status="planned",
            spend_micro=spend_micro,
            spend_denom=spend_denom,
            estimated_regen_micro=spend_micro,
            message="planned",
        )

    async def execute_acquisition(self, month: str, spend_micro: int, spend_denom: str) -> RegenAcquisitionRecord:
        raise RuntimeError("dex down")


class _ExplodingBurn(AbstractBurnProvider):
    name = "exploding"

    async def plan_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        return RegenBurnRecord(provider=self.name, status="planned", amount_micro=amount_micro, message="planned")

    async def execute_burn(self, month: str, amount_micro: int) -> RegenBurnRecord:
        raise RuntimeError("burn rpc down")


def _simulated(**overrides):
    return {
        "acquisition": SimulatedAcquisitionProvider(2_000_000),
        "burn": SimulatedBurnProvider(),
        **overrides,
    }


def _live(force: bool = False, credit_type: Optional[str] = None) -> RunMonthlyBatchInput:
    return RunMonthlyBatchInput(month=TEST_MONTH, dry_run=False, force=force, credit_type=credit_type)


@pytest.mark.asyncio
async def test_dry_run_plans_and_records_without_broadcast(contributions, executions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner()
    executor = make_executor(signer=signer)

    result = await executor.run_monthly_batch({"month": TEST_MONTH})

    assert result.status == "dry_run"
    assert result.message == "Dry run complete. No on-chain transaction was broadcast."
    assert result.budget_usd_cents == GROSS_CENTS
    assert result.protocol_fee.fee_usd_cents == FEE_CENTS
    assert result.planned_cost_micro == CREDIT_BUDGET_MICRO
    assert result.planned_quantity_micro == PLANNED_QUANTITY_MICRO
    assert result.planned_cost_denom == "uusdc"
    assert result.credit_mix.strategy == "70/30 toward carbon (cheaper average price)"
    assert [item.user_id for item in result.attributions] == ["alice", "bob", "carol"]
    assert sum(item.attributed_quantity_micro for item in result.attributions) == PLANNED_QUANTITY_MICRO
    assert result.regen_acquisition.status == "skipped"
    assert result.regen_burn.status == "skipped"
    assert signer.broadcasts == []

    history = await executions.list_records()
    assert [(record.status, record.dry_run) for record in history] == [("dry_run", True)]
    assert history[0].executed_at == "2026-04-01T09:00:00.000Z"
    assert history[0].reason == f"Monthly subscription pool retirement ({TEST_MONTH})"


@pytest.mark.asyncio
async def test_live_run_is_idempotent_until_forced(contributions, executions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner()
    confirmation = FakeConfirmation()
    executor = make_executor(signer=signer, confirmation=confirmation, **_simulated())

    first = await executor.run_monthly_batch(_live())
    second = await executor.run_monthly_batch(_live())
    forced = await executor.run_monthly_batch(_live(force=True))

    assert first.status == "success"
    assert first.message == "Monthly batch retirement completed successfully."
    assert first.tx_hash == "TX0001"
    assert first.block_height == 1001
    assert first.retirement_id == "WyRet-001"
    assert confirmation.lookups == ["TX0001", "TX0002"]
    assert first.regen_acquisition.status == "executed"
    assert first.regen_acquisition.acquired_regen_micro == REGEN_FROM_FEE
    assert first.regen_burn.status == "executed"
    assert first.regen_burn.amount_micro == REGEN_FROM_FEE

    assert second.status == "already_executed"
    assert "force=true" in second.message
    assert forced.status == "success"
    assert len(signer.broadcasts) == 2
    assert [record.status for record in await executions.list_records()] == ["success", "success"]


@pytest.mark.asyncio
async def test_buy_direct_message_carries_orders_and_retirement_details(contributions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner()
    executor = make_executor(signer=signer, default_jurisdiction="CA-QC")

    await executor.run_monthly_batch(_live())

    (message,) = signer.broadcasts[0]
    assert message["typeUrl"] == BUY_DIRECT_TYPE_URL
    assert message["value"]["buyer"] == signer.address
    orders = message["value"]["orders"]
    assert [order["sellOrderId"] for order in orders] == ["1", "2"]
    assert [order["quantity"] for order in orders] == ["7.875000", "1.350000"]
    assert orders[0]["bidPrice"] == {"denom": "uusdc", "amount": "2000000"}
    assert all(order["disableAutoRetire"] is False for order in orders)
    assert all(order["retirementJurisdiction"] == "CA-QC" for order in orders)


@pytest.mark.asyncio
async def test_no_contributions(make_executor, executions) -> None:
    result = await make_executor().run_monthly_batch({"month": TEST_MONTH, "dry_run": False})

    assert result.status == "no_contributions"
    assert result.message == f"No pool contributions found for {TEST_MONTH}."
    assert await executions.list_records() == []


@pytest.mark.asyncio
async def test_no_orders(contributions, executions, make_executor) -> None:
    await seed_march(contributions)

    result = await make_executor(orders=[]).run_monthly_batch({"month": TEST_MONTH})

    assert result.status == "no_orders"
    assert result.protocol_fee.fee_usd_cents == FEE_CENTS
    assert result.credit_mix.strategy == "No eligible carbon or biodiversity orders"
    assert await executions.list_records() == []


@pytest.mark.asyncio
async def test_wallet_not_configured_writes_nothing(contributions, executions, make_executor) -> None:
    await seed_march(contributions)

    result = await make_executor(signer=FakeSigner(configured=False)).run_monthly_batch(_live())

    assert result.status == "wallet_not_configured"
    assert result.planned_quantity_micro == PLANNED_QUANTITY_MICRO
    assert await executions.list_records() == []


@pytest.mark.asyncio
async def test_rejected_broadcast_is_recorded_as_failed(contributions, executions, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(signer=FakeSigner(code=13, raw_log="out of gas"), **_simulated())

    result = await executor.run_monthly_batch(_live())

    assert result.status == "failed"
    assert result.message == "Transaction rejected (code 13): out of gas"
    assert result.regen_acquisition.status == "skipped"
    assert result.regen_burn.status == "skipped"
    record = result.execution_record
    assert record.status == "failed"
    assert record.error == result.message
    assert await executions.has_successful_execution(TEST_MONTH) is False


@pytest.mark.asyncio
async def test_signer_exception_is_recorded_as_failed(contributions, executions, make_executor) -> None:
    await seed_march(contributions)

    result = await make_executor(signer=FakeSigner(error=RuntimeError("rpc timeout"))).run_monthly_batch(_live())

    assert result.status == "failed"
    assert result.execution_record.error == "rpc timeout"


@pytest.mark.asyncio
async def test_acquisition_failure_does_not_fail_the_batch(contributions, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(acquisition=_ExplodingAcquisition(), burn=SimulatedBurnProvider())

    result = await executor.run_monthly_batch(_live())

    assert result.status == "success"
    assert result.regen_acquisition.status == "failed"
    assert result.regen_acquisition.message == "REGEN acquisition failed: dex down"
    assert result.message.endswith("REGEN acquisition failed: dex down")
    assert result.regen_burn.status == "skipped"
    assert result.execution_record.status == "success"


@pytest.mark.asyncio
async def test_burn_failure_does_not_fail_the_batch(contributions, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(acquisition=SimulatedAcquisitionProvider(2_000_000), burn=_ExplodingBurn())

    result = await executor.run_monthly_batch(_live())

    assert result.status == "success"
    assert result.regen_acquisition.status == "executed"
    assert result.regen_burn.status == "failed"
    assert result.regen_burn.amount_micro == REGEN_FROM_FEE
    assert result.message.endswith("REGEN burn failed: burn rpc down")
    assert result.execution_record.status == "success"
    assert result.execution_record.regen_burn.status == "failed"


@pytest.mark.asyncio
async def test_rejected_burn_broadcast_is_flagged_on_a_successful_batch(contributions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner()
    executor = make_executor(
        signer=signer,
        acquisition=SimulatedAcquisitionProvider(2_000_000),
        burn=LiveBurnProvider(FakeSigner(code=11, raw_log="insufficient fees"), "regen1burnaddress"),
    )

    result = await executor.run_monthly_batch(_live())

    assert result.status == "success"
    assert result.regen_burn.status == "failed"
    assert result.message.endswith("REGEN burn failed: transaction failed (code 11): insufficient fees")


@pytest.mark.asyncio
async def test_live_providers_without_wallet_still_dry_run(contributions, executions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner(configured=False)
    executor = make_executor(
        signer=signer,
        acquisition=LiveAcquisitionProvider(signer, 2_000_000),
        burn=LiveBurnProvider(signer, "regen1burnaddress"),
    )

    dry = await executor.run_monthly_batch({"month": TEST_MONTH})
    live = await executor.run_monthly_batch(_live())

    assert dry.status == "dry_run"
    assert dry.regen_acquisition.status == "planned"
    assert dry.regen_acquisition.estimated_regen_micro == REGEN_FROM_FEE
    assert dry.regen_burn.status == "planned"
    assert live.status == "wallet_not_configured"
    assert signer.broadcasts == []
    assert [record.status for record in await executions.list_records()] == ["dry_run"]


@pytest.mark.asyncio
async def test_max_budget_caps_the_gross_pool(contributions, make_executor) -> None:
    await seed_march(contributions)

    result = await make_executor().run_monthly_batch({"month": TEST_MONTH, "max_budget_usd": "10"})

    assert result.budget_usd_cents == 1_000
    assert result.protocol_fee.credit_budget_usd_cents == 900
    assert result.planned_cost_micro <= 9_000_000


@pytest.mark.asyncio
async def test_explicit_credit_type_has_its_own_gate(contributions, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor()

    carbon = await executor.run_monthly_batch(_live(credit_type="carbon"))
    everything = await executor.run_monthly_batch(_live())

    assert carbon.status == "success"
    assert carbon.credit_mix is None
    assert carbon.planned_quantity_micro == 11_250_000
    assert carbon.execution_record.credit_type == "carbon"
    assert everything.status == "success"
    assert everything.credit_mix is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"month": "2026-3"},
        {"month": TEST_MONTH, "max_budget_usd": "0"},
        {"month": TEST_MONTH, "payment_denom": "REGEN"},
        {"month": TEST_MONTH, "credit_type": "forestry"},
    ],
)
async def test_invalid_input_raises(make_executor, payload) -> None:
    with pytest.raises(ValidationError):
        await make_executor().run_monthly_batch(payload)


@pytest.mark.asyncio
async def test_busy_run_lock_fails_fast(contributions, run_lock, make_executor) -> None:
    await seed_march(contributions)
    holder = await run_lock.acquire(run_lock_key(TEST_MONTH, None))

    with pytest.raises(LockTimeoutError):
        await make_executor().run_monthly_batch(_live())

    await holder.release()


@pytest.mark.asyncio
async def test_concurrent_live_runs_retire_once(contributions, executions, make_executor) -> None:
    await seed_march(contributions)
    signer = FakeSigner()
    executor = make_executor(signer=signer, run_lock_wait_seconds=5.0)

    results = await asyncio.gather(executor.run_monthly_batch(_live()), executor.run_monthly_batch(_live()))

    assert sorted(result.status for result in results) == ["already_executed", "success"]
    assert len(signer.broadcasts) == 1
    assert [record.status for record in await executions.list_records()] == ["success"]


@pytest.mark.asyncio
async def test_monthly_status_recommendations(contributions, make_executor) -> None:
    executor = make_executor()

    empty = await executor.get_monthly_status(TEST_MONTH)
    await seed_march(contributions)
    fresh = await executor.get_monthly_status(TEST_MONTH)
    await executor.run_monthly_batch({"month": TEST_MONTH})
    after_dry_run = await executor.get_monthly_status(TEST_MONTH)
    await executor.run_monthly_batch(_live())
    done = await executor.get_monthly_status(TEST_MONTH)

    assert empty.ready_for_execution is False
    assert empty.recommendation.startswith("No contributions found")
    assert fresh.ready_for_execution is True
    assert fresh.gross_budget_usd_cents == GROSS_CENTS
    assert fresh.protocol_fee.fee_usd_cents == FEE_CENTS
    assert fresh.recommendation == "Run a dry run to preview the batch before executing."
    assert after_dry_run.latest_execution.status == "dry_run"
    assert after_dry_run.recommendation.startswith("Dry-run record exists")
    assert done.ready_for_execution is False
    assert done.latest_success is not None
    assert done.recommendation.startswith("A successful execution already exists")


@pytest.mark.asyncio
async def test_reconciliation_requires_a_fresh_dry_run(contributions, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(clock=lambda: datetime(2026, 3, 10, tzinfo=timezone.utc))

    blocked = await executor.run_reconciliation(_live())
    dry = await executor.run_reconciliation({"month": TEST_MONTH})
    preflight = await executor.run_reconciliation(_live(), preflight_only=True)
    await contributions.record_contribution(
        {"user_id": "dave", "tier_id": "grove", "contributed_at": "2026-03-20T00:00:00Z"}
    )
    stale = await executor.run_reconciliation(_live())
    overridden = await executor.run_reconciliation(_live(), allow_execute_without_dry_run=True)

    assert blocked.batch_status == "blocked_preflight"
    assert blocked.blocked is True
    assert blocked.execution_mode == "live"
    assert dry.batch_status == "dry_run"
    assert dry.batch_result.status == "dry_run"
    assert preflight.batch_status == "preflight_ok"
    assert preflight.batch_result is None
    assert stale.batch_status == "blocked_preflight_stale_dry_run"
    assert stale.latest_execution.status == "dry_run"
    assert overridden.batch_status == "success"
    assert overridden.blocked is False


@pytest.mark.asyncio
async def test_reconciliation_runs_are_recorded(contributions, reconciliation_runs, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(clock=lambda: datetime(2026, 3, 10, tzinfo=timezone.utc))

    blocked = await executor.run_reconciliation(_live())
    preflight = await executor.run_reconciliation({"month": TEST_MONTH}, preflight_only=True)
    dry = await executor.run_reconciliation({"month": TEST_MONTH})
    live = await executor.run_reconciliation(_live())

    runs = await reconciliation_runs.list_records()
    by_id = {run.id: run for run in runs}
    assert len(runs) == 4
    assert by_id[blocked.run_id].status == "blocked"
    assert by_id[blocked.run_id].batch_status == "blocked_preflight"
    assert by_id[preflight.run_id].status == "completed"
    assert by_id[preflight.run_id].batch_status == "preflight_ok"
    assert by_id[preflight.run_id].preflight_only is True
    assert by_id[dry.run_id].batch_status == "dry_run"
    assert by_id[live.run_id].status == "completed"
    assert by_id[live.run_id].batch_status == "success"
    assert by_id[live.run_id].execution_mode == "live"
    assert all(run.finished_at is not None for run in runs)


@pytest.mark.asyncio
async def test_reconciliation_run_is_failed_when_the_batch_fails(contributions, reconciliation_runs, make_executor) -> None:
    await seed_march(contributions)
    executor = make_executor(signer=FakeSigner(code=13, raw_log="out of gas"))

    result = await executor.run_reconciliation(_live(), allow_execute_without_dry_run=True)

    (run,) = await reconciliation_runs.list_records()
    assert result.batch_status == "failed"
    assert run.id == result.run_id
    assert run.status == "failed"
    assert run.batch_status == "failed"
    assert run.error == "Transaction rejected (code 13): out of gas"


@pytest.mark.asyncio
async def test_reconciliation_run_is_failed_when_the_batch_raises(
    contributions, reconciliation_runs, run_lock, make_executor
) -> None:
    await seed_march(contributions)
    holder = await run_lock.acquire(run_lock_key(TEST_MONTH, None))

    with pytest.raises(LockTimeoutError):
        await make_executor().run_reconciliation({"month": TEST_MONTH})
    await holder.release()

    (run,) = await reconciliation_runs.list_records()
    assert run.status == "failed"
    assert run.batch_status == "error"
    assert run.error
    assert run.finished_at is not None
