"""CLI tests using fixture market data."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from miyomi.cli import app
from miyomi.core.config import settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch):
    monkeypatch.setattr(settings, "anthropic_api_key", None)
    monkeypatch.setattr(settings, "neynar_api_key", None)
    monkeypatch.setattr(settings, "farcaster_signer_uuid", None)


@pytest.fixture
def state_path(temp_dir) -> str:
    return str(temp_dir / "state.json")


@pytest.mark.integration
def test_info() -> None:
    result = runner.invoke(app, ["info"])
    
    assert result.exit_code == 0
    assert "Miyomi Configuration" in result.output


@pytest.mark.integration
def test_markets_and_opportunities() -> None:
    markets = runner.invoke(app, ["markets", "--mode", "fixture"])
    opportunities = runner.invoke(app, ["opportunities", "--mode", "fixture", "-n", "3"])
    
    assert markets.exit_code == 0
    assert "7 aggregated" in markets.output
    assert opportunities.exit_code == 0
    assert "actionable" in opportunities.output


@pytest.mark.integration
def test_invalid_mode_is_rejected() -> None:
    result = runner.invoke(app, ["markets", "--mode", "bogus"])
    
    assert result.exit_code == 2


@pytest.mark.integration
def test_pick_then_update_and_stats(state_path) -> None:
    picked = runner.invoke(app, ["pick", "--mode", "fixture", "--state-path", state_path, "--no-publish"])
    
    assert picked.exit_code == 0
    assert "completed" in picked.output
    assert "NO on Will NYC subway" in picked.output
    
    with open(state_path, encoding="utf-8") as f:
        state = json.load(f)
    assert len(state["picks"]) == 1
    assert state["picks"][0]["market_id"] == "fx-poly-nyc-subway"
    
    updated = runner.invoke(app, ["update-performance", "--mode", "fixture", "--state-path", state_path, "--no-publish"])
    assert updated.exit_code == 0
    assert "flat" in updated.output
    assert "call holding steady" in updated.output
    
    stats = runner.invoke(app, ["stats", "--state-path", state_path])
    assert stats.exit_code == 0
    assert "Total Picks" in stats.output


@pytest.mark.integration
def test_update_without_pick(state_path) -> None:
    result = runner.invoke(app, ["update-performance", "--mode", "fixture", "--state-path", state_path])
    
    assert result.exit_code == 0
    assert "no_opportunity" in result.output
