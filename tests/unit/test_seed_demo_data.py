from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from scripts import seed_demo_data

runner = CliRunner()

DEMO_MONTH = "2026-05"
CONTRIBUTORS = 6
ORDERS = 5


def test_build_sell_orders_is_deterministic() -> None:
    first = seed_demo_data.build_sell_orders(ORDERS, seed=7)
    second = seed_demo_data.build_sell_orders(ORDERS, seed=7)

    assert first == second
    assert len(first) == ORDERS
    assert {order["askDenom"] for order in first} == {"uusdc"}
    assert all(order["askAmountMicro"] > 0 for order in first)


def test_build_contributions_use_stable_event_ids() -> None:
    payloads = seed_demo_data.build_contributions(DEMO_MONTH, CONTRIBUTORS, seed=7, tiers={"grove": 700})

    assert [payload["external_event_id"] for payload in payloads][:2] == [
        f"demo_{DEMO_MONTH}_001",
        f"demo_{DEMO_MONTH}_002",
    ]
    assert all(payload["contributed_at"].startswith(DEMO_MONTH) for payload in payloads)
    assert {payload["tier_id"] for payload in payloads} == {"grove"}


def test_seed_command_is_idempotent(tmp_path: Path) -> None:
    args = ["--month", DEMO_MONTH, "--contributors", str(CONTRIBUTORS), "--orders", str(ORDERS), "--data-dir", str(tmp_path)]

    first = runner.invoke(seed_demo_data.app, args)
    second = runner.invoke(seed_demo_data.app, args)

    assert first.exit_code == 0, first.output
    assert f"Seeded {CONTRIBUTORS} new contributions" in first.output
    assert second.exit_code == 0, second.output
    assert "Seeded 0 new contributions" in second.output
    document = json.loads((tmp_path / "pool-contributions.json").read_text(encoding="utf-8"))
    assert len(document["records"]) == CONTRIBUTORS
    orders = json.loads((tmp_path / "sell-orders.json").read_text(encoding="utf-8"))
    assert len(orders["sellOrders"]) == ORDERS
