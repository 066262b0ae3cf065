from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Tuple
import logging

if TYPE_CHECKING:
    from .store import PortfolioStore
    from .valuation import PortfolioValuation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Portfolio totals recorded for one calendar date."""

    snapshot_date: date
    total_value: Decimal
    total_cost: Decimal
    profit_loss: Decimal
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.snapshot_date.isoformat(),
            "total_value": str(self.total_value),
            "total_cost": str(self.total_cost),
            "profit_loss": str(self.profit_loss),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PortfolioSnapshot":
        created_at = data.get("created_at")
        return cls(
            snapshot_date=date.fromisoformat(data["date"]),
            total_value=Decimal(str(data["total_value"])),
            total_cost=Decimal(str(data["total_cost"])),
            profit_loss=Decimal(str(data["profit_loss"])),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


def snapshot_from_valuation(valuation: "PortfolioValuation", on_date: date | None = None) -> PortfolioSnapshot:
    """Build the snapshot for ``on_date`` (default: the valuation's date)."""
    return PortfolioSnapshot(
        snapshot_date=on_date or valuation.as_of.date(),
        total_value=valuation.total_value,
        total_cost=valuation.total_cost,
        profit_loss=valuation.profit_loss,
    )


def save_snapshot(
    store: "PortfolioStore",
    valuation: "PortfolioValuation",
    on_date: date | None = None,
) -> PortfolioSnapshot:
    """Record the valuation's totals. A later save on the same date replaces the earlier one."""
    snapshot = snapshot_from_valuation(valuation, on_date)
    store.save_snapshot(snapshot)
    logger.info("Saved portfolio snapshot for %s: value=%s", snapshot.snapshot_date, snapshot.total_value)
    return snapshot


def get_history(store: "PortfolioStore", days: int = 30, today: date | None = None) -> list[PortfolioSnapshot]:
    """Snapshots from the last ``days`` days (inclusive of today), newest first."""
    if days < 0:
        raise ValueError("days must not be negative")
    today = today or date.today()
    start = today - timedelta(days=days)
    snapshots = [s for s in store.list_snapshots() if start <= s.snapshot_date <= today]
    return sorted(snapshots, key=lambda s: s.snapshot_date, reverse=True)


def calculate_max_drawdown(
    snapshots: Iterable[PortfolioSnapshot],
) -> Tuple[float, date | None, date | None]:
    """
    Calculate the maximum drawdown of total value across snapshots.

    Maximum drawdown measures the largest peak-to-trough decline in portfolio
    value, expressed as a fraction of the peak value.

    Args:
        snapshots: Snapshots in any order.

    Returns:
        Tuple of (max_drawdown, peak_date, trough_date).
        max_drawdown is zero or a negative float (e.g., -0.20 = 20% drawdown).
        peak_date and trough_date are None when the value never declined.

    Raises:
        ValueError: If fewer than two snapshots.
    """
    ordered = sorted(snapshots, key=lambda s: s.snapshot_date)
    if len(ordered) < 2:
        raise ValueError("Need at least two portfolio snapshots.")

    max_drawdown = 0.0
    peak_value = float(ordered[0].total_value)
    current_peak_date = ordered[0].snapshot_date
    peak_date: date | None = None
    trough_date: date | None = None

    for snapshot in ordered:
        value = float(snapshot.total_value)
        if value > peak_value:
            peak_value = value
            current_peak_date = snapshot.snapshot_date

        if peak_value > 0:
            drawdown = (value - peak_value) / peak_value
            if drawdown < max_drawdown:
                max_drawdown = drawdown
                peak_date = current_peak_date
                trough_date = snapshot.snapshot_date

    return max_drawdown, peak_date, trough_date
