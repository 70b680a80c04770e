from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from regen_pool.domain.models import (
    BatchExecutionRecord,
    ContributionReceipt,
    MonthlyPoolSummary,
    MonthlyStatus,
    ProtocolFeeBreakdown,
    ReconciliationResult,
    ReconciliationRunRecord,
    RunMonthlyBatchResult,
)
from regen_pool.domain.units import format_micro, format_usd

_STATUS_STYLES = {
    "success": "bold green",
    "dry_run": "cyan",
    "preflight_ok": "cyan",
    "already_executed": "yellow",
    "no_contributions": "yellow",
    "no_orders": "yellow",
    "wallet_not_configured": "red",
    "failed": "bold red",
    "completed": "bold green",
    "in_progress": "yellow",
    "blocked": "red",
}


def _styled_status(status: str) -> str:
    style = _STATUS_STYLES.get(status, "red" if status.startswith("blocked_") else "white")
    return f"[{style}]{status}[/{style}]"


def _fee_text(fee: Optional[ProtocolFeeBreakdown]) -> str:
    if fee is None:
        return "N/A"
    return f"{format_usd(fee.fee_usd_cents)} ({fee.fee_bps / 100:.2f}%)"


def _field_table(title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED, show_header=True)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")
    return table


def print_batch_result(result: RunMonthlyBatchResult, console: Optional[Console] = None) -> None:
    """
    Render a monthly batch result: status, planning figures, provider steps and
    per-contributor attribution.
    """
    console = console or Console()

    table = _field_table("Monthly Batch Retirement")
    table.add_row("Status", _styled_status(result.status))
    table.add_row("Month", result.month)
    table.add_row("Credit Type", result.credit_type or "all")
    table.add_row("Gross Budget", format_usd(result.budget_usd_cents))
    table.add_row("Protocol Fee", _fee_text(result.protocol_fee))
    if result.protocol_fee is not None:
        table.add_row("Credit Budget", format_usd(result.protocol_fee.credit_budget_usd_cents))
    table.add_row("Planned Quantity", format_micro(result.planned_quantity_micro))
    table.add_row(
        "Planned Cost", f"{format_micro(result.planned_cost_micro)} {result.planned_cost_denom}"
    )
    if result.credit_mix is not None:
        table.add_row("Credit Mix", result.credit_mix.strategy)
    if result.regen_acquisition is not None:
        acquisition = result.regen_acquisition
        table.add_row(
            "REGEN Acquisition",
            f"{acquisition.provider}/{acquisition.status} "
            f"(est. {format_micro(acquisition.estimated_regen_micro)} REGEN)",
        )
    if result.regen_burn is not None:
        burn = result.regen_burn
        table.add_row(
            "REGEN Burn", f"{burn.provider}/{burn.status} ({format_micro(burn.amount_micro)} REGEN)"
        )
    table.add_row("Tx Hash", result.tx_hash or "N/A")
    table.add_row("Retirement ID", result.retirement_id or "N/A")
    table.add_row("Message", result.message)
    console.print(table)

    if result.attributions:
        attribution_table = Table(
            title="Contributor Attribution",
            box=box.ROUNDED,
            caption="Sorted by contribution (descending)",
        )
        attribution_table.add_column("User", style="cyan", no_wrap=True)
        attribution_table.add_column("Share", justify="right", style="magenta")
        attribution_table.add_column("Contributed", justify="right", style="green")
        attribution_table.add_column("Budget", justify="right", style="green")
        attribution_table.add_column("Cost", justify="right", style="yellow")
        attribution_table.add_column("Credits", justify="right", style="bold green")
        for item in result.attributions:
            attribution_table.add_row(
                item.user_id,
                f"{item.share_ppm / 10_000:.4f}%",
                format_usd(item.contribution_usd_cents),
                format_usd(item.attributed_budget_usd_cents),
                format_micro(item.attributed_cost_micro),
                format_micro(item.attributed_quantity_micro),
            )
        console.print(attribution_table)


def print_history(records: List[BatchExecutionRecord], console: Optional[Console] = None) -> None:
    console = console or Console()
    if not records:
        console.print("[yellow]No execution records found.[/yellow]")
        return

    table = Table(title="Batch Execution History", box=box.ROUNDED)
    table.add_column("Executed At", style="cyan", no_wrap=True)
    table.add_column("Month", style="magenta")
    table.add_column("Credit Type")
    table.add_column("Status")
    table.add_column("Budget", justify="right", style="green")
    table.add_column("Spent", justify="right", style="yellow")
    table.add_column("Credits", justify="right", style="bold green")
    table.add_column("Tx Hash")
    for record in records:
        table.add_row(
            record.executed_at,
            record.month,
            record.credit_type or "all",
            _styled_status(record.status),
            format_usd(record.budget_usd_cents),
            f"{format_micro(record.spent_micro)} {record.spent_denom}",
            format_micro(record.retired_quantity_micro),
            record.tx_hash or "N/A",
        )
    console.print(table)


def print_status(status: MonthlyStatus, console: Optional[Console] = None) -> None:
    console = console or Console()
    latest = status.latest_execution
    table = _field_table("Monthly Reconciliation Status")
    table.add_row("Month", status.month)
    table.add_row("Credit Type Filter", status.credit_type or "all")
    table.add_row("Contribution Count", str(status.contribution_count))
    table.add_row("Unique Contributors", str(status.unique_contributors))
    table.add_row("Gross Pool Budget", format_usd(status.gross_budget_usd_cents))
    table.add_row("Protocol Fee", _fee_text(status.protocol_fee))
    table.add_row("Net Credit Budget", format_usd(status.protocol_fee.credit_budget_usd_cents))
    table.add_row("Latest Execution Status", latest.status if latest else "none")
    table.add_row("Latest Execution At", latest.executed_at if latest else "N/A")
    table.add_row(
        "Latest Successful Execution At",
        status.latest_success.executed_at if status.latest_success else "N/A",
    )
    table.add_row("Ready For Execution", "Yes" if status.ready_for_execution else "No")
    console.print(table)
    console.print(f"Recommendation: {status.recommendation}")


def print_month_summary(summary: MonthlyPoolSummary, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(
        title=f"Pool Contributions {summary.month}",
        box=box.ROUNDED,
        caption=(
            f"{summary.contribution_count} contributions from {summary.unique_contributors} "
            f"contributors, total {format_usd(summary.total_usd_cents)}"
        ),
    )
    table.add_column("User", style="cyan", no_wrap=True)
    table.add_column("Email")
    table.add_column("Contributions", justify="right", style="magenta")
    table.add_column("Total", justify="right", style="bold green")
    for contributor in summary.contributors:
        table.add_row(
            contributor.user_id,
            contributor.email or "",
            str(contributor.contribution_count),
            format_usd(contributor.total_usd_cents),
        )
    console.print(table)


def print_contribution_receipt(receipt: ContributionReceipt, console: Optional[Console] = None) -> None:
    console = console or Console()
    record = receipt.record
    if receipt.duplicate:
        console.print(
            f"[yellow]Duplicate event {record.external_event_id}; "
            f"existing record {record.id} returned.[/yellow]"
        )
    else:
        console.print(
            f"[green]Recorded {format_usd(record.amount_usd_cents)} for {record.user_id} "
            f"({record.month}).[/green]"
        )
    console.print(
        f"User total: {format_usd(receipt.user_summary.total_usd_cents)} across "
        f"{receipt.user_summary.contribution_count} contributions. "
        f"Pool {receipt.month_summary.month}: {format_usd(receipt.month_summary.total_usd_cents)}."
    )


def print_reconciliation(result: ReconciliationResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    if result.batch_result is not None:
        print_batch_result(result.batch_result, console)
        return
    table = _field_table("Monthly Reconciliation")
    table.add_row("Month", result.month)
    table.add_row("Credit Type", result.credit_type or "all")
    table.add_row("Intended Execution Mode", result.execution_mode)
    table.add_row("Batch Status", _styled_status(result.batch_status))
    if result.run_id:
        table.add_row("Run Id", result.run_id)
    console.print(table)
    console.print(result.message)


def print_reconciliation_runs(records: List[ReconciliationRunRecord], console: Optional[Console] = None) -> None:
    console = console or Console()
    if not records:
        console.print("[yellow]No reconciliation runs found.[/yellow]")
        return

    table = Table(title="Reconciliation Run History", box=box.ROUNDED)
    table.add_column("Started At", style="cyan", no_wrap=True)
    table.add_column("Month", style="magenta")
    table.add_column("Credit Type")
    table.add_column("Mode")
    table.add_column("Status")
    table.add_column("Batch Status")
    table.add_column("Finished At", style="dim")
    for record in records:
        mode = f"{record.execution_mode} (preflight)" if record.preflight_only else record.execution_mode
        table.add_row(
            record.started_at,
            record.month,
            record.credit_type or "all",
            mode,
            _styled_status(record.status),
            _styled_status(record.batch_status),
            record.finished_at or "-",
        )
    console.print(table)


__all__ = [
    "print_batch_result",
    "print_history",
    "print_status",
    "print_month_summary",
    "print_contribution_receipt",
    "print_reconciliation",
    "print_reconciliation_runs",
]
