from __future__ import annotations

import asyncio
import sys
from typing import Any, Coroutine, Dict, NoReturn, Optional, TypeVar

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console

from regen_pool.config import Settings, get_settings
from regen_pool.errors import ConfigurationError, PoolError
from regen_pool.orchestrator import MonthlyBatchExecutor, build_executor
from regen_pool.reporter import (
    print_batch_result,
    print_contribution_receipt,
    print_history,
    print_month_summary,
    print_reconciliation,
    print_reconciliation_runs,
    print_status,
)
from regen_pool.services.contributions import ContributionLedger
from regen_pool.services.executions import DEFAULT_HISTORY_LIMIT, ExecutionLedger
from regen_pool.services.reconciliation_runs import ReconciliationRunLedger
from regen_pool.strategies import available_acquisition_providers, available_burn_providers
from regen_pool.utils.logging import configure_logging

app = typer.Typer(help="Regen subscription pool: contributions and monthly batch retirements.")

T = TypeVar("T")


def _settings() -> Settings:
    try:
        return get_settings()
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning package errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except PoolError as exc:
        _fail(exc)


def _fail(exc: PoolError) -> NoReturn:
    Console(stderr=True).print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1) from exc


def _executor() -> MonthlyBatchExecutor:
    try:
        return build_executor(_settings())
    except PoolError as exc:
        _fail(exc)


@app.callback()
def _configure(ctx: typer.Context) -> None:
    try:
        settings = _settings()
    except PoolError as exc:
        _fail(exc)
    configure_logging(level=settings.log_level, json_logs=settings.log_json, force=False)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = _settings()
    typer.echo(
        f"data={settings.data_dir} | contributions={settings.resolved_contributions_path} "
        f"executions={settings.resolved_executions_path} locks={settings.resolved_locks_dir}"
    )
    typer.echo(
        f"fee_bps={settings.protocol_fee_bps} policy={settings.credit_mix_policy} "
        f"denom={settings.payment_denom} jurisdiction={settings.default_jurisdiction}"
    )
    typer.echo(
        f"acquisition={settings.acquisition_provider} "
        f"(available: {', '.join(available_acquisition_providers())}) "
        f"burn={settings.burn_provider} (available: {', '.join(available_burn_providers())})"
    )


@app.command()
def contribute(
    user_id: Optional[str] = typer.Option(None, "--user-id", "-u", help="Internal user id."),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Contributor email."),
    customer_id: Optional[str] = typer.Option(None, "--customer-id", help="Billing customer id."),
    amount_usd: Optional[str] = typer.Option(None, "--amount-usd", help="Amount in USD, e.g. 7.50."),
    amount_cents: Optional[int] = typer.Option(None, "--amount-cents", help="Amount in USD cents."),
    tier: Optional[str] = typer.Option(None, "--tier", "-t", help="Subscription tier id."),
    event_id: Optional[str] = typer.Option(
        None, "--event-id", help="External event id; repeated ids are recorded once."
    ),
    contributed_at: Optional[str] = typer.Option(
        None, "--at", help="ISO-8601 timestamp (default: now)."
    ),
    source: str = typer.Option("manual", "--source", help="subscription, manual or adjustment."),
) -> None:
    """
    Record one contribution into the pool ledger.
    """
    payload: Dict[str, Any] = {
        "user_id": user_id,
        "email": email,
        "customer_id": customer_id,
        "amount_usd": amount_usd,
        "amount_usd_cents": amount_cents,
        "tier_id": tier,
        "external_event_id": event_id,
        "contributed_at": contributed_at,
        "source": source,
    }
    ledger = ContributionLedger.from_settings(_settings())
    receipt = _run(ledger.record_contribution(payload))
    print_contribution_receipt(receipt)


@app.command()
def summary(
    month: Optional[str] = typer.Argument(None, help="Month as YYYY-MM; omit to list months."),
) -> None:
    """
    Show the monthly pool aggregate, or the months with contributions.
    """
    ledger = ContributionLedger.from_settings(_settings())
    if month is None:
        months = _run(ledger.list_available_months())
        typer.echo("Available months: " + (", ".join(months) if months else "none"))
        return
    print_month_summary(_run(ledger.get_monthly_summary(month)))


def _batch_payload(
    month: str,
    credit_type: Optional[str],
    max_budget_usd: Optional[str],
    live: bool,
    force: bool,
    reason: Optional[str],
    jurisdiction: Optional[str],
) -> Dict[str, Any]:
    return {
        "month": month,
        "credit_type": credit_type,
        "max_budget_usd": max_budget_usd,
        "dry_run": not live,
        "force": force,
        "reason": reason,
        "jurisdiction": jurisdiction,
        "payment_denom": _settings().payment_denom,
    }


@app.command()
def run(
    month: str = typer.Argument(..., help="Month as YYYY-MM."),
    credit_type: Optional[str] = typer.Option(
        None, "--credit-type", "-c", help="carbon or biodiversity (default: policy mix)."
    ),
    max_budget_usd: Optional[str] = typer.Option(None, "--max-budget-usd", help="Cap in USD."),
    live: bool = typer.Option(False, "--live/--dry-run", help="Broadcast instead of planning."),
    force: bool = typer.Option(False, "--force", help="Re-run even if the month succeeded."),
    reason: Optional[str] = typer.Option(None, "--reason", help="Retirement reason."),
    jurisdiction: Optional[str] = typer.Option(None, "--jurisdiction", help="Retirement jurisdiction."),
) -> None:
    """
    Run (or dry-run) the monthly batch retirement.
    """
    executor = _executor()
    payload = _batch_payload(month, credit_type, max_budget_usd, live, force, reason, jurisdiction)
    result = _run(executor.run_monthly_batch(payload))
    print_batch_result(result)
    if result.status == "failed":
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    month: str = typer.Argument(..., help="Month as YYYY-MM."),
    credit_type: Optional[str] = typer.Option(None, "--credit-type", "-c"),
    max_budget_usd: Optional[str] = typer.Option(None, "--max-budget-usd"),
    live: bool = typer.Option(False, "--live/--dry-run"),
    force: bool = typer.Option(False, "--force"),
    reason: Optional[str] = typer.Option(None, "--reason"),
    jurisdiction: Optional[str] = typer.Option(None, "--jurisdiction"),
    allow_without_dry_run: bool = typer.Option(
        False, "--allow-without-dry-run", help="Skip the dry-run-first preflight."
    ),
    preflight_only: bool = typer.Option(False, "--preflight-only", help="Check, do not run."),
) -> None:
    """
    Run the batch behind the dry-run-first preflight checks.
    """
    executor = _executor()
    payload = _batch_payload(month, credit_type, max_budget_usd, live, force, reason, jurisdiction)
    result = _run(
        executor.run_reconciliation(
            payload,
            allow_execute_without_dry_run=allow_without_dry_run,
            preflight_only=preflight_only,
        )
    )
    print_reconciliation(result)
    if result.blocked or result.batch_status == "failed":
        raise typer.Exit(code=1)


@app.command()
def history(
    month: Optional[str] = typer.Option(None, "--month", "-m"),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        help="success, failed or dry_run; with --runs: in_progress, completed, blocked or failed.",
    ),
    credit_type: Optional[str] = typer.Option(None, "--credit-type", "-c"),
    limit: int = typer.Option(DEFAULT_HISTORY_LIMIT, "--limit", "-n", help="1-200."),
    oldest_first: bool = typer.Option(False, "--oldest-first"),
    runs: bool = typer.Option(False, "--runs", help="List reconciliation runs instead of executions."),
) -> None:
    """
    List recorded batch executions or reconciliation runs.
    """
    if runs:
        run_ledger = ReconciliationRunLedger.from_settings(_settings())
        print_reconciliation_runs(
            _run(
                run_ledger.get_history(
                    month=month,
                    status=status,
                    credit_type=credit_type,
                    limit=limit,
                    newest_first=not oldest_first,
                )
            )
        )
        return

    ledger = ExecutionLedger.from_settings(_settings())
    records = _run(
        ledger.get_history(
            month=month,
            status=status,
            credit_type=credit_type,
            limit=limit,
            newest_first=not oldest_first,
        )
    )
    print_history(records)


@app.command()
def status(
    month: str = typer.Argument(..., help="Month as YYYY-MM."),
    credit_type: Optional[str] = typer.Option(None, "--credit-type", "-c"),
) -> None:
    """
    Show readiness of a month for execution.
    """
    executor = _executor()
    print_status(_run(executor.get_monthly_status(month, credit_type)))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
