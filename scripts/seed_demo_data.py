"""
Demo data seeding for the regen pool.

Writes a deterministic month of pseudo-random contributions through the
contribution ledger (event ids are stable, so re-running is a no-op) and a
sell-order file mixing carbon and biodiversity offers for local dry runs.
"""

from __future__ import annotations

import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from regen_pool.config import get_settings
from regen_pool.errors import PoolError
from regen_pool.services.contributions import ContributionLedger
from regen_pool.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Seed a local data directory with demo contributions and sell orders.")
log = get_logger(__name__)

CREDIT_CLASSES = [
    ("C01", "C"),
    ("C02", "C"),
    ("BT01", "BT"),
    ("KSH01", "KSH"),
]


def build_sell_orders(count: int, seed: int) -> List[Dict[str, Any]]:
    rng = random.Random(seed)
    orders: List[Dict[str, Any]] = []
    for index in range(1, count + 1):
        class_id, abbrev = rng.choice(CREDIT_CLASSES)
        orders.append(
            {
                "id": str(index),
                "batchDenom": f"{class_id}-001-20240101-20241231-{index:03d}",
                "creditTypeAbbrev": abbrev,
                "quantityMicro": rng.randint(5, 500) * 1_000_000,
                "askAmountMicro": rng.randint(4, 45) * 1_000_000,
                "askDenom": "uusdc",
                "disableAutoRetire": False,
            }
        )
    return orders


def build_contributions(month: str, contributors: int, seed: int, tiers: Dict[str, int]) -> List[Dict[str, Any]]:
    rng = random.Random(seed)
    tier_ids = sorted(tiers)
    payloads: List[Dict[str, Any]] = []
    for index in range(1, contributors + 1):
        day = rng.randint(1, 28)
        payloads.append(
            {
                "email": f"member{index:03d}@example.org",
                "customer_id": f"cus_demo_{index:03d}",
                "tier_id": rng.choice(tier_ids),
                "external_event_id": f"demo_{month}_{index:03d}",
                "contributed_at": f"{month}-{day:02d}T12:00:00Z",
                "source": "subscription",
            }
        )
    return payloads


async def _seed(ledger: ContributionLedger, payloads: List[Dict[str, Any]]) -> int:
    created = 0
    for payload in payloads:
        receipt = await ledger.record_contribution(payload)
        created += 0 if receipt.duplicate else 1
    return created


@app.command()
def seed(
    month: str = typer.Option(..., "--month", "-m", help="Month to seed as YYYY-MM."),
    contributors: int = typer.Option(25, "--contributors", "-n", help="Number of contributors."),
    orders: int = typer.Option(12, "--orders", help="Number of sell orders to write."),
    seed_value: int = typer.Option(42, "--seed", help="Random seed for reproducibility."),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Override REGEN_DATA_DIR."),
) -> None:
    """
    Seed contributions for one month and a sell-order file.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json, force=False)
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})

    orders_path = settings.resolved_sell_orders_path
    orders_path.parent.mkdir(parents=True, exist_ok=True)
    orders_path.write_text(
        json.dumps({"sellOrders": build_sell_orders(orders, seed_value)}, indent=2) + "\n",
        encoding="utf-8",
    )

    ledger = ContributionLedger.from_settings(settings)
    payloads = build_contributions(month, contributors, seed_value, settings.subscription_tiers)
    try:
        created = asyncio.run(_seed(ledger, payloads))
    except PoolError as exc:
        typer.echo(f"Seeding failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    log.info(
        f"[SEED COMPLETE] {month}",
        extra={"month": month, "created": created, "orders": orders, "path": str(orders_path)},
    )
    typer.echo(
        f"Seeded {created} new contributions for {month} "
        f"({len(payloads) - created} already present) and {orders} sell orders at {orders_path}."
    )


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
