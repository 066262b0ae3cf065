"""Runtime settings read from the environment (and a ``.env`` file)."""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os

from dotenv import load_dotenv

from .currency import Currency, parse_currency

DEFAULT_STORE_PATH = Path(".folioscope") / "portfolio.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_positive(name: str, value: str, cast: type) -> float | int:
    try:
        number = cast(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return number


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Attributes:
        store_path: JSON file holding transactions, holdings and snapshots.
        reporting_currency: Currency valuations are reported in.
        quote_timeout: Seconds allowed for each ticker's quote lookup.
        max_workers: Concurrent quote lookups.
        allow_short: Accept SELLs larger than the position held.
        log_level: Root log level name.
    """

    store_path: Path = DEFAULT_STORE_PATH
    reporting_currency: Currency = Currency.SEK
    quote_timeout: float = 5.0
    max_workers: int = 8
    allow_short: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, dotenv: bool = True) -> "Settings":
        """Build settings from ``FOLIOSCOPE_*`` environment variables.

        Args:
            env: Mapping to read instead of ``os.environ``.
            dotenv: Load a ``.env`` file into the process environment first.
                Ignored when ``env`` is given.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        try:
            currency = parse_currency(env.get("FOLIOSCOPE_CURRENCY"), default=Currency.SEK)
        except ValueError as e:
            raise ValueError(f"FOLIOSCOPE_CURRENCY: {e}") from None

        return cls(
            store_path=Path(env.get("FOLIOSCOPE_STORE") or DEFAULT_STORE_PATH),
            reporting_currency=currency,
            quote_timeout=float(_parse_positive("FOLIOSCOPE_QUOTE_TIMEOUT", env.get("FOLIOSCOPE_QUOTE_TIMEOUT", "5"), float)),
            max_workers=int(_parse_positive("FOLIOSCOPE_MAX_WORKERS", env.get("FOLIOSCOPE_MAX_WORKERS", "8"), int)),
            allow_short=_parse_bool("FOLIOSCOPE_ALLOW_SHORT", env.get("FOLIOSCOPE_ALLOW_SHORT", "false")),
            log_level=(env.get("FOLIOSCOPE_LOG_LEVEL") or "WARNING").upper(),
        )
