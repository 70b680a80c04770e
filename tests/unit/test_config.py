from __future__ import annotations

from pathlib import Path

import pytest

from regen_pool.config import DEFAULT_SUBSCRIPTION_TIERS, Settings, get_settings


def test_paths_derive_from_data_dir(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path)

    assert settings.resolved_contributions_path == tmp_path / "pool-contributions.json"
    assert settings.resolved_executions_path == tmp_path / "monthly-batch-executions.json"
    assert settings.resolved_locks_dir == tmp_path / "run-locks"
    assert settings.resolved_sell_orders_path == tmp_path / "sell-orders.json"


def test_explicit_paths_win(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path, executions_path=tmp_path / "elsewhere.json")

    assert settings.resolved_executions_path == tmp_path / "elsewhere.json"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("REGEN_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("REGEN_PROTOCOL_FEE_BPS", "250")
    monkeypatch.setenv("REGEN_CREDIT_MIX_POLICY", "off")
    monkeypatch.setenv("REGEN_SUBSCRIPTION_TIERS", '{"sapling": 500}')
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.data_dir == tmp_path
        assert settings.protocol_fee_bps == 250
        assert settings.credit_mix_policy == "off"
        assert settings.subscription_tiers == {"sapling": 500}
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()


def test_defaults() -> None:
    settings = Settings()

    assert settings.protocol_fee_bps == 1_000
    assert settings.payment_denom == "USDC"
    assert settings.acquisition_provider == "disabled"
    assert settings.burn_provider == "disabled"
    assert settings.subscription_tiers == DEFAULT_SUBSCRIPTION_TIERS
