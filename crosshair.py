"""Pointer inspection: nearest data point lookup and legend text."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, TypeVar

from chart_models import (
    EnrichedBar,
    NoDataError,
    PositionTotals,
    day_ordinal,
    price_text,
    to_decimal,
)
from chart_scales import ChartScales

logger = logging.getLogger(__name__)

T = TypeVar("T")

LegendLines = List[Tuple[str, str]]


def _bisect_left(ordinals: Sequence[float], target: float, lo: int = 0) -> int:
    hi = len(ordinals)
    while lo < hi:
        mid = (lo + hi) // 2
        if ordinals[mid] < target:
            lo = mid + 1
        else:
            hi = mid
    return lo


def resolve_nearest(series: Sequence[T], query: date | datetime) -> T:
    """Return the element of ``series`` whose date is closest to ``query``.

    ``series`` must be sorted ascending by ``.date``. Queries before the first
    date resolve to the first element and queries at or after the last date to
    the last element. When the query sits exactly halfway between two dates
    the earlier element wins.
    """
    if not series:
        raise NoDataError("Cannot resolve a point in an empty series")
    target = day_ordinal(query)
    ordinals = _OrdinalView(series)
    index = _bisect_left(ordinals, target, lo=1)
    if index >= len(series):
        return series[-1]
    before = series[index - 1]
    after = series[index]
    if target <= ordinals[index - 1]:
        return before
    if target - ordinals[index - 1] > ordinals[index] - target:
        return after
    return before


class _OrdinalView:
    """Lazy day-ordinal view so the search only touches O(log n) dates."""

    def __init__(self, series: Sequence) -> None:
        self._series = series

    def __len__(self) -> int:
        return len(self._series)

    def __getitem__(self, index: int) -> float:
        return day_ordinal(self._series[index].date)


# ---------------------- Legend ----------------------

def format_legend(point: EnrichedBar, *, anonymize: bool = False) -> LegendLines:
    """Label/text pairs describing one resolved bar.

    Position lines appear only for days with a non-flat position; the quantity
    line is left out when ``anonymize`` is set.
    """
    lines: LegendLines = [("date", point.date.isoformat())]
    for name in ("open", "high", "low", "close"):
        lines.append((name, price_text(getattr(point, name))))
    if point.volume is not None:
        lines.append(("volume", str(int(point.volume))))
    average = point.average_price
    if average is None:
        return lines
    lines.append(("@ price", price_text(average)))
    if not anonymize:
        quantity = point.net_quantity
        label = "sold" if quantity < 0 else "bought"
        lines.append((label, str(abs(quantity))))
    return lines


@dataclass(frozen=True)
class TotalsLegend:
    text: str
    tone: str  # gain, loss or flat
    delta_pct: Optional[Decimal] = None


def format_totals(
    totals: PositionTotals,
    last_close: Decimal,
    *,
    anonymize: bool = False,
) -> TotalsLegend | None:
    """Summary of the holdings at their average cost against the latest close."""
    average = totals.average_price
    if average is None or average == 0:
        return None
    delta = to_decimal(last_close) / average * 100 - 100
    if delta == 0:
        delta_text, tone = "", "flat"
    else:
        sign = "+" if delta > 0 else ""
        delta_text = f"{sign}{delta:.1f}%"
        tone = "gain" if delta > 0 else "loss"
    count = "" if anonymize else f"{totals.total_quantity} @ "
    text = f"{count}{price_text(average)} {delta_text}".rstrip()
    return TotalsLegend(text=text, tone=tone, delta_pct=delta)


# ---------------------- Pointer inspection ----------------------

@dataclass(frozen=True)
class CrosshairReading:
    """Resolved point for one pointer position, in data and pixel space."""

    point: EnrichedBar
    x: float
    y: float
    x_extent: float
    y_extent: float
    legend: LegendLines


def inspect(
    series: Sequence[EnrichedBar],
    scales: ChartScales,
    pointer_x: float,
    *,
    anonymize: bool = False,
) -> CrosshairReading:
    query = scales.x.invert(pointer_x)
    point = resolve_nearest(series, query)
    x = scales.x(point.date)
    y = scales.price(float(point.close))
    logger.debug("pointer %.1f -> %s (%.1f, %.1f)", pointer_x, point.date, x, y)
    return CrosshairReading(
        point=point,
        x=x,
        y=y,
        x_extent=scales.width - x,
        y_extent=scales.height - y,
        legend=format_legend(point, anonymize=anonymize),
    )
