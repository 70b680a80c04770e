"""
Orchestrator for the monthly batch retirement.

One call to `MonthlyBatchExecutor.run_monthly_batch` takes a month's pooled
contributions through: idempotency gate, protocol fee split, credit purchase
planning, contributor attribution, (live) purchase broadcast and confirmation,
REGEN acquisition and burn, and finally one append to the execution ledger.
Everything after input validation runs under a named run lock for
"<month>:<credit_type|all>". Concurrent invocations for the same scope either
wait their turn (and then see the first one's success record) or, with no
configured wait, fail fast with LockTimeoutError.

Usage (example from CLI):
    from regen_pool.orchestrator import build_executor
    from regen_pool.domain.models import RunMonthlyBatchInput

    executor = build_executor()
    result = await executor.run_monthly_batch(RunMonthlyBatchInput(month="2026-03"))
    print(result.status, result.message)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from regen_pool.config import Settings, get_settings
from regen_pool.domain.models import (
    BatchExecutionRecord,
    BudgetOrderSelection,
    ContributorAttribution,
    CreditMixSummary,
    CreditType,
    MonthlyStatus,
    ProtocolFeeBreakdown,
    ReconciliationResult,
    RegenAcquisitionRecord,
    RegenBurnRecord,
    RetirementConfirmation,
    RunMonthlyBatchInput,
    RunMonthlyBatchResult,
)
from regen_pool.domain.units import (
    bank_denom,
    cents_to_micro,
    format_micro,
    to_iso,
    usd_to_cents,
    utc_now,
    validate_month,
)
from regen_pool.errors import TransactionError, ValidationError
from regen_pool.infrastructure.clients import (
    ConfirmationLookup,
    ConfirmationService,
    JsonFileMarketDataService,
    MarketDataService,
    PollingConfirmationService,
    SignerService,
    UnconfiguredSigner,
)
from regen_pool.infrastructure.locks import FileNamedLock, NamedLock
from regen_pool.services.attribution import build_contributor_attributions
from regen_pool.services.contributions import ContributionLedger
from regen_pool.services.credit_mix import SelectOrdersForBudget, select_orders_with_policy
from regen_pool.services.executions import ExecutionLedger
from regen_pool.services.fee import calculate_protocol_fee
from regen_pool.services.order_selector import OrderSelector
from regen_pool.services.reconciliation_runs import ReconciliationRunLedger
from regen_pool.strategies.abstract import AcquisitionProvider, BurnProvider
from regen_pool.strategies.acquisition import create_acquisition_provider
from regen_pool.strategies.burn import create_burn_provider
from regen_pool.utils.logging import get_logger

log = get_logger(__name__)

BUY_DIRECT_TYPE_URL = "/regen.ecocredit.marketplace.v1.MsgBuyDirect"
SUPPORTED_PAYMENT_DENOM = "uusdc"


def run_lock_key(month: str, credit_type: Optional[CreditType]) -> str:
    return f"{month}:{credit_type or 'all'}"


def _coerce_input(value: Union[RunMonthlyBatchInput, Mapping[str, Any]]) -> RunMonthlyBatchInput:
    if isinstance(value, RunMonthlyBatchInput):
        return value
    try:
        return RunMonthlyBatchInput.model_validate(value)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid batch input: {exc}") from exc


def _skip_acquisition(plan: RegenAcquisitionRecord, reason: str) -> RegenAcquisitionRecord:
    return plan.model_copy(update={"status": "skipped", "message": reason})


def _skip_burn(plan: RegenBurnRecord, reason: str) -> RegenBurnRecord:
    return plan.model_copy(update={"status": "skipped", "message": reason})


class MonthlyBatchExecutor:
    """
    Runs monthly batches against injected ledgers, market, signer and providers.

    Parameters
    ----------
    contributions : ContributionLedger
        Source of the monthly pool.
    executions : ExecutionLedger
        Append-only record of attempts; also the idempotency gate.
    selector : OrderSelector or callable
        Budget-constrained order selection.
    run_lock : NamedLock
        Serializes runs per (month, credit type).
    signer : SignerService
        Wallet used for the purchase broadcast; may be unconfigured.
    acquisition, burn : providers
        Protocol fee conversion and burn strategies.
    confirmation : ConfirmationService, optional
        Best-effort wait for the retirement to be indexed.
    runs : ReconciliationRunLedger, optional
        Audit trail for `run_reconciliation`; nothing is recorded without it.
    """

    def __init__(
        self,
        contributions: ContributionLedger,
        executions: ExecutionLedger,
        selector: Union[OrderSelector, SelectOrdersForBudget],
        run_lock: NamedLock,
        signer: SignerService,
        acquisition: AcquisitionProvider,
        burn: BurnProvider,
        confirmation: Optional[ConfirmationService] = None,
        runs: Optional[ReconciliationRunLedger] = None,
        protocol_fee_bps: int = 1000,
        credit_mix_policy: str = "balanced",
        default_jurisdiction: str = "US",
        payment_denom: str = "USDC",
        run_lock_wait_seconds: float = 0.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.contributions = contributions
        self.executions = executions
        self.selector = selector
        self.run_lock = run_lock
        self.signer = signer
        self.acquisition = acquisition
        self.burn = burn
        self.confirmation = confirmation
        self.runs = runs
        self.protocol_fee_bps = protocol_fee_bps
        self.credit_mix_policy = credit_mix_policy
        self.default_jurisdiction = default_jurisdiction
        self.payment_denom = payment_denom
        self.run_lock_wait_seconds = run_lock_wait_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Monthly batch
    # ------------------------------------------------------------------

    async def run_monthly_batch(
        self, batch_input: Union[RunMonthlyBatchInput, Mapping[str, Any]]
    ) -> RunMonthlyBatchResult:
        """
        Run (or dry-run) the batch for one month and credit type.

        Returns a result for every terminal state; only bad input
        (`ValidationError`) and a busy run lock (`LockTimeoutError`) raise.
        """
        batch_input = _coerce_input(batch_input)
        validate_month(batch_input.month)
        max_budget_cents = self._max_budget_cents(batch_input.max_budget_usd)
        if bank_denom(batch_input.payment_denom) != SUPPORTED_PAYMENT_DENOM:
            raise ValidationError(
                f"Unsupported payment denom for batch retirement: {batch_input.payment_denom}"
            )

        key = run_lock_key(batch_input.month, batch_input.credit_type)
        async with await self.run_lock.acquire(key, wait_seconds=self.run_lock_wait_seconds):
            log.info(
                f"[BATCH START] {key}",
                extra={
                    "month": batch_input.month,
                    "credit_type": batch_input.credit_type,
                    "dry_run": batch_input.dry_run,
                    "force": batch_input.force,
                },
            )
            result = await self._run_locked(batch_input, max_budget_cents)
            log.info(
                f"[BATCH COMPLETE] {key} {result.status}",
                extra={"month": batch_input.month, "status": result.status},
            )
            return result

    @staticmethod
    def _max_budget_cents(max_budget_usd: Optional[Decimal]) -> Optional[int]:
        if max_budget_usd is None:
            return None
        try:
            return usd_to_cents(max_budget_usd)
        except ValidationError as exc:
            raise ValidationError("max_budget_usd must be a positive number") from exc

    async def _run_locked(
        self, batch_input: RunMonthlyBatchInput, max_budget_cents: Optional[int]
    ) -> RunMonthlyBatchResult:
        month = batch_input.month
        credit_type = batch_input.credit_type
        payment_denom = batch_input.payment_denom

        def result(status: str, message: str, **fields: Any) -> RunMonthlyBatchResult:
            fields.setdefault("planned_cost_denom", payment_denom)
            return RunMonthlyBatchResult(
                status=status, month=month, credit_type=credit_type, message=message, **fields
            )

        if not batch_input.force and await self.executions.has_successful_execution(month, credit_type):
            return result(
                "already_executed",
                "A successful monthly batch retirement already exists for this month and "
                "credit type. Use force=true to re-run.",
            )

        summary = await self.contributions.get_monthly_summary(month)
        if summary.contribution_count == 0 or summary.total_usd_cents <= 0:
            return result("no_contributions", f"No pool contributions found for {month}.")

        gross_cents = summary.total_usd_cents
        if max_budget_cents is not None:
            gross_cents = min(gross_cents, max_budget_cents)

        protocol_fee = calculate_protocol_fee(gross_cents, self.protocol_fee_bps, payment_denom)
        if protocol_fee.credit_budget_usd_cents <= 0:
            return result(
                "no_orders",
                "No credit purchase budget remains after applying protocol fee to this monthly pool.",
                budget_usd_cents=gross_cents,
                protocol_fee=protocol_fee,
            )

        selection, credit_mix = await select_orders_with_policy(
            self.selector,
            cents_to_micro(protocol_fee.credit_budget_usd_cents),
            payment_denom,
            policy=self.credit_mix_policy,
            explicit_credit_type=credit_type,
        )
        planning = {
            "budget_usd_cents": gross_cents,
            "planned_quantity_micro": selection.total_quantity_micro,
            "planned_cost_micro": selection.total_cost_micro,
            "planned_cost_denom": selection.payment_denom,
            "protocol_fee": protocol_fee,
            "credit_mix": credit_mix,
        }
        if not selection.orders:
            return result(
                "no_orders",
                "No eligible sell orders were found for the configured budget and filters.",
                **planning,
            )

        attributions = build_contributor_attributions(
            summary.contributors,
            summary.total_usd_cents,
            protocol_fee.credit_budget_usd_cents,
            selection.total_cost_micro,
            selection.total_quantity_micro,
            selection.payment_denom,
        )
        planning["attributions"] = attributions

        acquisition_plan = await self.acquisition.plan_acquisition(
            month, protocol_fee.fee_micro, protocol_fee.fee_denom
        )
        burn_plan = await self.burn.plan_burn(month, acquisition_plan.estimated_regen_micro)

        jurisdiction = batch_input.jurisdiction or self.default_jurisdiction
        reason = batch_input.reason or f"Monthly subscription pool retirement ({month})"

        def record(status: str, **fields: Any) -> BatchExecutionRecord:
            return self._build_record(
                status,
                batch_input,
                reason=reason,
                budget_usd_cents=gross_cents,
                selection=selection,
                protocol_fee=protocol_fee,
                credit_mix=credit_mix,
                attributions=attributions,
                **fields,
            )

        if batch_input.dry_run:
            entry = await self.executions.append(
                record("dry_run", regen_acquisition=acquisition_plan, regen_burn=burn_plan)
            )
            return result(
                "dry_run",
                "Dry run complete. No on-chain transaction was broadcast.",
                regen_acquisition=acquisition_plan,
                regen_burn=burn_plan,
                execution_record=entry,
                **planning,
            )

        if not self.signer.is_configured():
            return result(
                "wallet_not_configured",
                "Wallet is not configured. Configure a signer before executing monthly batch retirements.",
                regen_acquisition=acquisition_plan,
                regen_burn=burn_plan,
                **planning,
            )

        error: Optional[str] = None
        tx_hash: Optional[str] = None
        height: Optional[int] = None
        try:
            buyer = await self.signer.get_address()
            broadcast = await self.signer.sign_and_broadcast(
                [self._buy_direct_message(buyer, selection, jurisdiction, reason)]
            )
            if broadcast.code != 0:
                raise TransactionError(
                    f"Transaction rejected (code {broadcast.code}): "
                    f"{broadcast.raw_log or 'unknown error'}",
                    code=broadcast.code,
                    raw_log=broadcast.raw_log,
                )
            tx_hash, height = broadcast.tx_hash, broadcast.height
        except TransactionError as exc:
            error = str(exc)
        except Exception as exc:
            error = str(exc) or type(exc).__name__

        if error is not None:
            skipped_acquisition = _skip_acquisition(
                acquisition_plan, "Skipped because the credit purchase failed."
            )
            skipped_burn = _skip_burn(burn_plan, "Skipped because the credit purchase failed.")
            entry = await self.executions.append(
                record(
                    "failed",
                    regen_acquisition=skipped_acquisition,
                    regen_burn=skipped_burn,
                    error=error,
                )
            )
            log.error(f"[BATCH FAILED] {month}", extra={"month": month, "error": error})
            return result(
                "failed",
                error,
                regen_acquisition=skipped_acquisition,
                regen_burn=skipped_burn,
                execution_record=entry,
                **planning,
            )

        confirmation = await self._await_confirmation(tx_hash)
        acquisition = await self._execute_acquisition(month, protocol_fee)
        burn = await self._execute_burn(month, acquisition)

        entry = await self.executions.append(
            record(
                "success",
                regen_acquisition=acquisition,
                regen_burn=burn,
                tx_hash=tx_hash,
                block_height=height,
                retirement_id=confirmation.retirement_id if confirmation else None,
            )
        )

        message = "Monthly batch retirement completed successfully."
        # Provider failure messages already name the failed step.
        if acquisition.status == "failed":
            message += f" {acquisition.message}"
        if burn.status == "failed":
            message += f" {burn.message}"
        return result(
            "success",
            message,
            regen_acquisition=acquisition,
            regen_burn=burn,
            tx_hash=tx_hash,
            block_height=height,
            retirement_id=entry.retirement_id,
            execution_record=entry,
            **planning,
        )

    def _buy_direct_message(
        self,
        buyer: str,
        selection: BudgetOrderSelection,
        jurisdiction: str,
        reason: str,
    ) -> Dict[str, Any]:
        return {
            "typeUrl": BUY_DIRECT_TYPE_URL,
            "value": {
                "buyer": buyer,
                "orders": [
                    {
                        "sellOrderId": order.sell_order_id,
                        "quantity": format_micro(order.quantity_micro),
                        "bidPrice": {
                            "denom": order.ask_denom,
                            "amount": str(order.unit_price_micro),
                        },
                        "disableAutoRetire": False,
                        "retirementJurisdiction": jurisdiction,
                        "retirementReason": reason,
                    }
                    for order in selection.orders
                ],
            },
        }

    async def _await_confirmation(self, tx_hash: Optional[str]) -> Optional[RetirementConfirmation]:
        if self.confirmation is None or not tx_hash:
            return None
        try:
            return await self.confirmation.wait_for_confirmation(tx_hash)
        except Exception as exc:
            log.warning(
                f"[CONFIRMATION] lookup failed for {tx_hash}",
                extra={"tx_hash": tx_hash, "error": str(exc)},
            )
            return None

    async def _execute_acquisition(
        self, month: str, protocol_fee: ProtocolFeeBreakdown
    ) -> RegenAcquisitionRecord:
        try:
            return await self.acquisition.execute_acquisition(
                month, protocol_fee.fee_micro, protocol_fee.fee_denom
            )
        except Exception as exc:
            log.warning(f"[ACQUISITION FAILED] {month}", extra={"month": month, "error": str(exc)})
            return RegenAcquisitionRecord(
                provider=self.acquisition.name,
                status="failed",
                spend_micro=protocol_fee.fee_micro,
                spend_denom=protocol_fee.fee_denom,
                estimated_regen_micro=0,
                message=f"REGEN acquisition failed: {exc}",
            )

    async def _execute_burn(self, month: str, acquisition: RegenAcquisitionRecord) -> RegenBurnRecord:
        amount = (acquisition.acquired_regen_micro or 0) if acquisition.status == "executed" else 0
        try:
            if amount <= 0:
                return await self.burn.plan_burn(month, 0)
            return await self.burn.execute_burn(month, amount)
        except Exception as exc:
            log.warning(f"[BURN FAILED] {month}", extra={"month": month, "error": str(exc)})
            return RegenBurnRecord(
                provider=self.burn.name,
                status="failed",
                amount_micro=amount,
                message=f"REGEN burn failed: {exc}",
            )

    def _build_record(
        self,
        status: str,
        batch_input: RunMonthlyBatchInput,
        reason: str,
        budget_usd_cents: int,
        selection: BudgetOrderSelection,
        protocol_fee: ProtocolFeeBreakdown,
        credit_mix: Optional[CreditMixSummary],
        attributions: List[ContributorAttribution],
        **fields: Any,
    ) -> BatchExecutionRecord:
        return BatchExecutionRecord(
            id=f"batch_{uuid.uuid4()}",
            month=batch_input.month,
            credit_type=batch_input.credit_type,
            dry_run=status == "dry_run",
            status=status,
            reason=reason,
            budget_usd_cents=budget_usd_cents,
            spent_micro=selection.total_cost_micro,
            spent_denom=selection.payment_denom,
            retired_quantity_micro=selection.total_quantity_micro,
            protocol_fee=protocol_fee,
            credit_mix=credit_mix,
            attributions=attributions,
            executed_at=to_iso(self._clock()),
            **fields,
        )

    # ------------------------------------------------------------------
    # Status and guarded reconciliation
    # ------------------------------------------------------------------

    async def get_monthly_status(
        self, month: str, credit_type: Optional[CreditType] = None
    ) -> MonthlyStatus:
        validate_month(month)
        summary = await self.contributions.get_monthly_summary(month)
        protocol_fee = calculate_protocol_fee(
            summary.total_usd_cents, self.protocol_fee_bps, self.payment_denom
        )
        latest = await self.executions.latest(month, credit_type)
        latest_success = await self.executions.latest(month, credit_type, status="success")

        has_contributions = summary.total_usd_cents > 0
        if not has_contributions:
            recommendation = "No contributions found. Record contributions first, then re-check."
        elif latest_success is not None:
            recommendation = (
                "A successful execution already exists for this month "
                f"(latest success: {latest_success.executed_at}). "
                "Use force only if a rerun is intentional."
            )
        elif latest is not None and latest.status == "failed":
            recommendation = (
                "Latest execution failed. Run a dry run first, then execute with dry_run disabled."
            )
        elif latest is not None and latest.status == "dry_run":
            recommendation = "Dry-run record exists. Execute with dry_run disabled when ready."
        else:
            recommendation = "Run a dry run to preview the batch before executing."

        return MonthlyStatus(
            month=month,
            credit_type=credit_type,
            contribution_count=summary.contribution_count,
            unique_contributors=summary.unique_contributors,
            gross_budget_usd_cents=summary.total_usd_cents,
            protocol_fee=protocol_fee,
            latest_execution=latest,
            latest_success=latest_success,
            ready_for_execution=has_contributions and latest_success is None,
            recommendation=recommendation,
        )

    async def run_reconciliation(
        self,
        batch_input: Union[RunMonthlyBatchInput, Mapping[str, Any]],
        allow_execute_without_dry_run: bool = False,
        preflight_only: bool = False,
    ) -> ReconciliationResult:
        """
        Run the batch behind a dry-run-first preflight.

        A live run is blocked unless the latest record for the month and credit
        type is a dry run that is not older than the latest contribution.

        With a run ledger attached, every call leaves one run record: `blocked`
        for a preflight stop, otherwise `in_progress` until the batch returns
        (`completed`) or fails (`failed`, also when the batch raises).
        """
        batch_input = _coerce_input(batch_input)
        month = validate_month(batch_input.month)
        mode = "dry_run" if batch_input.dry_run else "live"
        run_fields: Dict[str, Any] = {
            "credit_type": batch_input.credit_type,
            "preflight_only": preflight_only,
            "force": batch_input.force,
        }

        def verdict(status: str, message: str, **fields: Any) -> ReconciliationResult:
            log.info(
                f"[RECONCILE] {month} {status}",
                extra={"month": month, "credit_type": batch_input.credit_type, "batch_status": status},
            )
            return ReconciliationResult(
                batch_status=status,
                month=month,
                credit_type=batch_input.credit_type,
                execution_mode=mode,
                message=message,
                **fields,
            )

        if not batch_input.dry_run and not allow_execute_without_dry_run:
            blocked = await self._preflight(month, batch_input.credit_type)
            if blocked is not None:
                status, message, latest = blocked
                run_id = None
                if self.runs is not None:
                    run = await self.runs.record_blocked_run(month, mode, status, message, **run_fields)
                    run_id = run.id
                return verdict(status, message, latest_execution=latest, run_id=run_id)

        run = await self.runs.start_run(month, mode, **run_fields) if self.runs is not None else None
        try:
            if preflight_only:
                batch_result = None
                status = "preflight_ok"
                message = "Preflight checks passed. No batch execution was performed."
            else:
                batch_result = await self.run_monthly_batch(batch_input)
                status, message = batch_result.status, batch_result.message
        except Exception as exc:
            if run is not None:
                await self.runs.finish_run(run.id, "failed", "error", error=str(exc) or type(exc).__name__)
            raise

        run_id = None
        if run is not None:
            failed = status == "failed"
            finished = await self.runs.finish_run(
                run.id,
                "failed" if failed else "completed",
                status,
                message=message,
                error=message if failed else None,
            )
            run_id = finished.id
        return verdict(status, message, batch_result=batch_result, run_id=run_id)

    async def _preflight(
        self, month: str, credit_type: Optional[CreditType]
    ) -> Optional[Tuple[str, str, Optional[BatchExecutionRecord]]]:
        """Return (blocked status, message, latest record) or None when a live run may proceed."""
        latest = await self.executions.latest(month, credit_type)
        if latest is None or latest.status != "dry_run":
            state = latest.status if latest else "none"
            return (
                "blocked_preflight",
                f"Live execution was blocked because the latest execution state is "
                f"'{state}', not 'dry_run'. Run a dry run first, or allow execution "
                "without a dry run to override.",
                latest,
            )
        summary = await self.contributions.get_monthly_summary(month)
        if summary.last_contribution_at and latest.executed_at < summary.last_contribution_at:
            return (
                "blocked_preflight_stale_dry_run",
                f"Live execution was blocked because the latest dry run "
                f"({latest.executed_at}) is older than the latest contribution "
                f"({summary.last_contribution_at}). Run a fresh dry run first.",
                latest,
            )
        return None


def build_executor(
    settings: Optional[Settings] = None,
    signer: Optional[SignerService] = None,
    market: Optional[MarketDataService] = None,
    confirmation: Optional[ConfirmationService] = None,
    confirmation_lookup: Optional[ConfirmationLookup] = None,
) -> MonthlyBatchExecutor:
    """
    Wire an executor from settings; collaborators default to the bundled implementations.

    A bare `confirmation_lookup` is polled with the configured attempts and interval.
    """
    settings = settings or get_settings()
    if confirmation is None and confirmation_lookup is not None:
        confirmation = PollingConfirmationService(
            confirmation_lookup,
            attempts=settings.confirmation_attempts,
            interval_seconds=settings.confirmation_interval_seconds,
        )
    signer = signer or UnconfiguredSigner()
    return MonthlyBatchExecutor(
        contributions=ContributionLedger.from_settings(settings),
        executions=ExecutionLedger.from_settings(settings),
        selector=OrderSelector(market or JsonFileMarketDataService(settings.resolved_sell_orders_path)),
        run_lock=FileNamedLock(settings.resolved_locks_dir, ttl_seconds=settings.run_lock_ttl_seconds),
        signer=signer,
        acquisition=create_acquisition_provider(settings, signer),
        burn=create_burn_provider(settings, signer),
        confirmation=confirmation,
        runs=ReconciliationRunLedger.from_settings(settings),
        protocol_fee_bps=settings.protocol_fee_bps,
        credit_mix_policy=settings.credit_mix_policy,
        default_jurisdiction=settings.default_jurisdiction,
        payment_denom=settings.payment_denom,
        run_lock_wait_seconds=settings.run_lock_wait_seconds,
    )


__all__ = [
    "MonthlyBatchExecutor",
    "build_executor",
    "run_lock_key",
]
