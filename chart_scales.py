"""Domain-to-pixel mappings for the position chart."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from chart_models import ChartData, NoDataError, datetime_from_ordinal, day_ordinal

logger = logging.getLogger(__name__)

MOVING_AVERAGE_INTERPOLATION = "basis"
VOLUME_BAND = 0.25  # share of the canvas height given to volume bars
POSITION_BAND = 0.25


@dataclass(frozen=True)
class LinearScale:
    """Affine map from ``domain`` to ``range``.

    A degenerate domain (both ends equal) maps everything to ``range[0]``.
    """

    domain: Tuple[float, float]
    range: Tuple[float, float]

    @property
    def degenerate(self) -> bool:
        return self.domain[0] == self.domain[1]

    def __call__(self, value: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if self.degenerate:
            return float(r0)
        return r0 + (float(value) - d0) / (d1 - d0) * (r1 - r0)

    def invert(self, pixel: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if self.degenerate or r0 == r1:
            return float(d0)
        return d0 + (float(pixel) - r0) / (r1 - r0) * (d1 - d0)


class TimeScale:
    """Linear scale over calendar days."""

    def __init__(self, domain: Tuple[date, date], range: Tuple[float, float]) -> None:
        self.domain = domain
        self.range = range
        self._linear = LinearScale((day_ordinal(domain[0]), day_ordinal(domain[1])), range)

    def __call__(self, value: date | datetime) -> float:
        return self._linear(day_ordinal(value))

    def invert(self, pixel: float) -> datetime:
        return datetime_from_ordinal(self._linear.invert(pixel))

    def __repr__(self) -> str:
        return f"TimeScale(domain={self.domain!r}, range={self.range!r})"


@dataclass(frozen=True)
class ChartScales:
    """The four scales sharing one canvas."""

    x: TimeScale
    price: LinearScale
    volume: Optional[LinearScale]
    position: Optional[LinearScale]
    width: float
    height: float
    moving_average_interpolation: str = MOVING_AVERAGE_INTERPOLATION


def build_scales(
    data: ChartData,
    width: float,
    height: float,
    *,
    price_padding: float = 5.0,
) -> ChartScales:
    """Derive scale domains from the full chart data.

    Price runs bottom-up over the closes (padded below), volume occupies the
    bottom quarter and position sizes the top quarter of the canvas.
    """
    if not data.series:
        raise NoDataError("Cannot build scales for an empty series")
    dates = [point.date for point in data.series]
    closes = [float(point.close) for point in data.series]
    x_min, x_max = min(dates), max(dates)
    y_min, y_max = min(closes), max(closes)

    x = TimeScale((x_min, x_max), (0.0, float(width)))
    price = LinearScale((y_min - price_padding, y_max), (float(height), 0.0))

    volume = None
    volumes = [bar.volume for bar in data.volume_bars]
    if volumes:
        volume = LinearScale(
            (float(min(volumes)), float(max(volumes))),
            (float(height), height * (1 - VOLUME_BAND)),
        )

    position = None
    sizes = [abs(point.net_quantity) for point in data.positioned]
    if sizes:
        position = LinearScale((float(min(sizes)), float(max(sizes))), (0.0, height * POSITION_BAND))

    logger.debug(
        "extrema x=[%s, %s] close=[%s, %s] volume=%s position=%s",
        x_min,
        x_max,
        y_min,
        y_max,
        volume.domain if volume else None,
        position.domain if position else None,
    )
    return ChartScales(
        x=x,
        price=price,
        volume=volume,
        position=position,
        width=float(width),
        height=float(height),
    )
