"""Basic environment, structure and settings tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from miyomi.core.config import Settings
from miyomi.core.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _src_root() -> Path:
    return _project_root() / "src"


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_python_version() -> None:
    """Ensure we are running on Python 3.9+ (requires-python)."""

    major, minor = sys.version_info[:2]
    logger.info("python-version", major=major, minor=minor)
    assert major == 3 and minor >= 9, "Python 3.9+ is required"


def test_project_structure() -> None:
    """Verify the package layout exists."""

    package = _src_root() / "miyomi"
    required_paths = [
        package / "__init__.py",
        package / "core" / "__init__.py",
        package / "models" / "__init__.py",
        package / "engines" / "__init__.py",
        package / "extractors" / "__init__.py",
        package / "fixtures" / "polymarket.json",
        package / "fixtures" / "kalshi.json",
        _project_root() / "pyproject.toml",
    ]

    missing = [str(p.relative_to(_project_root())) for p in required_paths if not p.exists()]
    logger.info("project-structure", missing=missing)
    assert not missing, f"Missing required paths: {', '.join(missing)}"


def test_basic_imports() -> None:
    """Import the key modules."""

    miyomi = pytest.importorskip("miyomi")
    pytest.importorskip("miyomi.pipeline")
    pytest.importorskip("miyomi.cli")

    assert miyomi.__version__
    logger.info("basic-imports", success=True)


@pytest.mark.unit
def test_settings_defaults(monkeypatch) -> None:
    for name in ("MARKET_DATA_MODE", "ANTHROPIC_API_KEY", "NEYNAR_API_KEY", "FARCASTER_SIGNER_UUID"):
        monkeypatch.delenv(name, raising=False)

    config = Settings(_env_file=None)

    assert config.market_data_mode == "live"
    assert config.daily_pick_time == "12:00"
    assert not config.llm_enabled
    assert not config.publishing_enabled


@pytest.mark.unit
def test_settings_normalize_values() -> None:
    config = Settings(
        _env_file=None,
        log_level="debug",
        market_data_mode="FIXTURE",
        daily_pick_time="9:05",
        neynar_api_key="key",
        farcaster_signer_uuid="signer",
    )

    assert config.log_level == "DEBUG"
    assert config.market_data_mode == "fixture"
    assert config.daily_pick_time == "09:05"
    assert config.publishing_enabled


@pytest.mark.unit
@pytest.mark.parametrize(
    "field, value",
    [
        ("log_level", "verbose"),
        ("market_data_mode", "mock"),
        ("daily_pick_time", "noon"),
        ("performance_update_time", "25:00"),
    ],
)
def test_settings_reject_invalid_values(field, value) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


@pytest.mark.unit
def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("MARKET_DATA_MODE", "fixture")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")

    config = Settings(_env_file=None)

    assert config.market_data_mode == "fixture"
    assert config.llm_enabled
