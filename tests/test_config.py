"""Tests for environment-driven settings and logging setup."""

import logging
from pathlib import Path

import pytest

from folioscope.config import DEFAULT_STORE_PATH, Settings
from folioscope.currency import Currency
from folioscope.logging_utils import configure_logging


def test_defaults_with_empty_environment():
    settings = Settings.from_env(env={})

    assert settings.store_path == DEFAULT_STORE_PATH
    assert settings.reporting_currency == Currency.SEK
    assert settings.quote_timeout == 5.0
    assert settings.max_workers == 8
    assert settings.allow_short is False
    assert settings.log_level == "WARNING"


def test_values_from_environment():
    settings = Settings.from_env(
        env={
            "FOLIOSCOPE_STORE": "/tmp/ledger.json",
            "FOLIOSCOPE_CURRENCY": "usd",
            "FOLIOSCOPE_QUOTE_TIMEOUT": "2.5",
            "FOLIOSCOPE_MAX_WORKERS": "3",
            "FOLIOSCOPE_ALLOW_SHORT": "yes",
            "FOLIOSCOPE_LOG_LEVEL": "debug",
        }
    )

    assert settings.store_path == Path("/tmp/ledger.json")
    assert settings.reporting_currency == Currency.USD
    assert settings.quote_timeout == 2.5
    assert settings.max_workers == 3
    assert settings.allow_short is True
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name, value",
    [
        ("FOLIOSCOPE_CURRENCY", "XYZ"),
        ("FOLIOSCOPE_QUOTE_TIMEOUT", "0"),
        ("FOLIOSCOPE_QUOTE_TIMEOUT", "soon"),
        ("FOLIOSCOPE_MAX_WORKERS", "1.5"),
        ("FOLIOSCOPE_ALLOW_SHORT", "maybe"),
    ],
)
def test_invalid_values_name_the_variable(name, value):
    with pytest.raises(ValueError, match=name):
        Settings.from_env(env={name: value})


def test_from_os_environment(monkeypatch, tmp_path):
    """Verify the process environment is read when no mapping is given."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FOLIOSCOPE_CURRENCY", "EUR")

    assert Settings.from_env().reporting_currency == Currency.EUR


def test_configure_logging_sets_root_level(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(logging.getLogger("yfinance"), "level", logging.NOTSET)

    configure_logging("info")

    assert root.level == logging.INFO
    assert logging.getLogger("yfinance").level == logging.CRITICAL


def test_configure_logging_unknown_level_falls_back(monkeypatch):
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(logging.getLogger("yfinance"), "level", logging.NOTSET)
    monkeypatch.setenv("FOLIOSCOPE_LOG_LEVEL", "chatty")

    configure_logging()

    assert root.level == logging.WARNING
