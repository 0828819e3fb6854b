"""Aggregate user transactions and join them onto daily market bars."""
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from chart_models import (
    Bar,
    CalendarDate,
    ChartData,
    CostLinePoint,
    DailyPosition,
    EnrichedBar,
    InvalidInputError,
    MovingAveragePoint,
    NoDataError,
    PositionTotals,
    RawTransaction,
    VolumeBar,
    ZERO,
)
from crosshair import resolve_nearest

logger = logging.getLogger(__name__)

DEFAULT_MA_WINDOW = 49  # 50-bar average: the window counts bars before the current one
UNMATCHED_POLICIES = ("drop", "snap")


# ---------------------- Aggregation ----------------------

def aggregate(transactions: Iterable[RawTransaction]) -> Dict[CalendarDate, DailyPosition]:
    """Net all transactions per calendar date.

    Buys add and sells subtract both quantity and cost, so a day where
    everything bought was sold again ends up flat with no average price.
    """
    positions: Dict[CalendarDate, DailyPosition] = {}
    for txn in transactions:
        if not isinstance(txn, RawTransaction):
            raise InvalidInputError(f"Expected a transaction, got {txn!r}")
        today = DailyPosition(date=txn.date, net_quantity=txn.signed_quantity, net_cost=txn.signed_cost)
        existing = positions.get(txn.date)
        positions[txn.date] = today if existing is None else existing.merged(today)
    return positions


# ---------------------- Join ----------------------

def _check_ascending(bars: Sequence[Bar]) -> None:
    for previous, current in zip(bars, bars[1:]):
        if current.date <= previous.date:
            raise InvalidInputError(
                f"Bars must have strictly ascending dates: {current.date} follows {previous.date}"
            )


def join(
    bars: Sequence[Bar],
    positions: Mapping[CalendarDate, DailyPosition],
    *,
    unmatched: str = "drop",
) -> List[EnrichedBar]:
    """Attach each bar's daily position, keeping bar order and count.

    ``unmatched`` decides what happens to positions on dates without a bar:
    ``"drop"`` leaves them out, ``"snap"`` merges them into the nearest bar.
    """
    if unmatched not in UNMATCHED_POLICIES:
        raise ValueError(f"Unknown unmatched policy {unmatched!r}; expected one of {UNMATCHED_POLICIES}")
    bars = list(bars)
    _check_ascending(bars)
    attached = _attach_positions(bars, positions, unmatched)
    return [EnrichedBar(bar=bar, position=attached.get(bar.date)) for bar in bars]


def _attach_positions(
    bars: Sequence[Bar],
    positions: Mapping[CalendarDate, DailyPosition],
    unmatched: str,
) -> Dict[CalendarDate, DailyPosition]:
    bar_dates = {bar.date for bar in bars}
    attached: Dict[CalendarDate, DailyPosition] = {}
    for day in sorted(positions):
        position = positions[day]
        target = day
        if day not in bar_dates:
            if unmatched == "drop" or not bars:
                logger.warning("Dropping transactions on %s: no bar for that date", day)
                continue
            target = resolve_nearest(bars, day).date
            logger.info("Snapping transactions on %s to %s", day, target)
        moved = DailyPosition(date=target, net_quantity=position.net_quantity, net_cost=position.net_cost)
        existing = attached.get(target)
        attached[target] = moved if existing is None else existing.merged(moved)
    return attached


def unmatched_dates(
    bars: Sequence[Bar],
    positions: Mapping[CalendarDate, DailyPosition],
) -> Tuple[CalendarDate, ...]:
    bar_dates = {bar.date for bar in bars}
    return tuple(sorted(day for day in positions if day not in bar_dates))


# ---------------------- Derived series ----------------------

def moving_average(series: Sequence[EnrichedBar], window: int = DEFAULT_MA_WINDOW) -> List[MovingAveragePoint]:
    """Trailing mean of closes over ``window`` preceding bars plus the current one.

    Near the start of the series the window shrinks, so the first point is
    simply its own close.
    """
    if window < 0:
        raise ValueError("Moving average window must not be negative")
    closes = pd.Series([float(point.close) for point in series], dtype=float)
    averages = closes.rolling(window=window + 1, min_periods=1).mean()
    return [
        MovingAveragePoint(date=point.date, average=float(average))
        for point, average in zip(series, averages)
    ]


def position_totals(series: Iterable[EnrichedBar]) -> PositionTotals:
    quantity = 0
    cost = ZERO
    for point in series:
        if point.position is None:
            continue
        quantity += point.position.net_quantity
        cost += point.position.net_cost
    return PositionTotals(total_quantity=quantity, total_cost=cost)


def volume_bars(series: Sequence[EnrichedBar]) -> List[VolumeBar]:
    """Non-empty volume bars, flagged rising unless the close fell since the previous one."""
    traded = [point for point in series if point.volume]
    bars: List[VolumeBar] = []
    for index, point in enumerate(traded):
        rising = index == 0 or not traded[index - 1].close > point.close
        bars.append(VolumeBar(date=point.date, volume=int(point.volume), rising=rising))
    return bars


def cost_line(series: Sequence[EnrichedBar], totals: PositionTotals) -> List[CostLinePoint]:
    """Average cost held, spanning the first to last day with a position."""
    average = totals.average_price
    if average is None:
        return []
    dates = [point.date for point in series if point.position is not None]
    return [CostLinePoint(date=min(dates), average_price=average), CostLinePoint(date=max(dates), average_price=average)]


# ---------------------- Load cycle ----------------------

def apply_cutoffs(
    bars: Iterable[Bar],
    *,
    after: Optional[date] = None,
    before: Optional[date] = None,
) -> List[Bar]:
    """Keep bars dated strictly after ``after`` and up to and including ``before``."""
    kept = [
        bar
        for bar in bars
        if (before is None or bar.date <= before) and (after is None or bar.date > after)
    ]
    if not kept:
        raise NoDataError(f"No bars left between {after or 'start'} and {before or 'end'}")
    return kept


def build_chart_data(
    bars: Iterable[Bar],
    transactions: Iterable[RawTransaction],
    *,
    after: Optional[date] = None,
    before: Optional[date] = None,
    window: int = DEFAULT_MA_WINDOW,
    unmatched: str = "drop",
) -> ChartData:
    """Run one full recompute from raw inputs to renderer-ready data."""
    kept = apply_cutoffs(bars, after=after, before=before)
    positions = aggregate(transactions)
    series = join(kept, positions, unmatched=unmatched)
    dropped = unmatched_dates(kept, positions) if unmatched == "drop" else ()
    average = moving_average(series, window)
    totals = position_totals(series)
    logger.debug(
        "Built %d bars, %d with positions, %d dates dropped",
        len(series),
        sum(1 for point in series if point.position is not None),
        len(dropped),
    )
    return ChartData(
        series=tuple(series),
        moving_average=tuple(average),
        totals=totals,
        volume_bars=tuple(volume_bars(series)),
        cost_line=tuple(cost_line(series, totals)),
        dropped=dropped,
    )
