"""Tests for configuration loading and validation."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from repoinsight.config import DEFAULT_CONFIG, VARIANCE_THRESHOLD_ENV, load_config
from repoinsight.errors import ConfigurationError


def test_load_config_defaults(monkeypatch):
    """Verify default tables are returned when nothing is overridden."""
    monkeypatch.delenv(VARIANCE_THRESHOLD_ENV, raising=False)

    config = load_config()

    assert config is DEFAULT_CONFIG
    assert config.validator.variance_threshold == 0.10
    assert config.window_days == 30
    assert config.bus_factor.cap == 5


def test_load_config_reads_threshold_from_env(monkeypatch):
    """Verify the variance threshold can be set through the environment."""
    monkeypatch.setenv(VARIANCE_THRESHOLD_ENV, "0.25")

    config = load_config()

    assert config.validator.variance_threshold == 0.25


def test_load_config_argument_overrides_env(monkeypatch):
    """Verify an explicit threshold wins over the environment."""
    monkeypatch.setenv(VARIANCE_THRESHOLD_ENV, "0.25")

    config = load_config(variance_threshold=0.05)

    assert config.validator.variance_threshold == 0.05


def test_load_config_non_numeric_env_raises(monkeypatch):
    """Verify a non-numeric environment threshold is a configuration error."""
    monkeypatch.setenv(VARIANCE_THRESHOLD_ENV, "ten percent")

    with pytest.raises(ConfigurationError, match=VARIANCE_THRESHOLD_ENV):
        load_config()


def test_load_config_out_of_range_threshold_raises(monkeypatch):
    """Verify thresholds outside [0, 1] are rejected."""
    monkeypatch.delenv(VARIANCE_THRESHOLD_ENV, raising=False)

    with pytest.raises(ConfigurationError):
        load_config(variance_threshold=1.5)
