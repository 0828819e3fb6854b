"""Value types shared by the position chart engine."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

CalendarDate = date

PRICE_QUANT = Decimal("0.01")
ZERO = Decimal("0")


# ---------------------- Errors ----------------------

class ChartError(Exception):
    """Base class for chart data failures."""


class InvalidInputError(ChartError, ValueError):
    """A transaction or bar record could not be used."""


class NoDataError(ChartError):
    """No bars are left to plot."""


# ---------------------- Decimal / date helpers ----------------------

def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        raise InvalidInputError("Expected a number, got None")
    if isinstance(value, bool):
        raise InvalidInputError(f"Expected a number, got {value!r}")
    if isinstance(value, (int, np.integer)):
        return Decimal(int(value))
    if isinstance(value, (float, np.floating)):
        if math.isnan(value) or math.isinf(value):
            raise InvalidInputError(f"Invalid numeric value: {value}")
        return Decimal(str(value))
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lower() in {"", "nan", "inf", "-inf", "+inf"}:
            raise InvalidInputError(f"Invalid numeric value: {value!r}")
        try:
            return Decimal(stripped)
        except ArithmeticError as exc:
            raise InvalidInputError(f"Invalid numeric value: {value!r}") from exc
    raise InvalidInputError(f"Expected a number, got {value!r}")


def price_text(value: Decimal) -> str:
    """Format a price with two decimals, rounding half up."""
    return str(to_decimal(value).quantize(PRICE_QUANT, rounding=ROUND_HALF_UP))


def positive_quantity(value) -> int:
    """Whole, positive share count; fractional or non-positive values are rejected."""
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid quantity: {value!r}")
    try:
        number = to_decimal(value)
    except InvalidInputError as exc:
        raise InvalidInputError(f"Invalid quantity: {value!r}") from exc
    if number != number.to_integral_value() or number <= 0:
        raise InvalidInputError(f"Quantity must be a positive whole number, got {value!r}")
    return int(number)


def to_calendar_date(value) -> CalendarDate:
    """Coerce ISO strings, datetimes and pandas timestamps to a calendar date."""
    if value is None or value is pd.NaT:
        raise InvalidInputError("Missing date")
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise InvalidInputError(f"Could not parse date: {value!r}") from exc
    raise InvalidInputError(f"Could not parse date: {value!r}")


def date_from_timestamp(seconds: int | float, gmtoffset: int = 0) -> CalendarDate:
    """Exchange-local calendar date for an epoch timestamp."""
    moment = datetime.fromtimestamp(int(seconds), tz=timezone.utc) + timedelta(seconds=gmtoffset)
    return moment.date()


def day_ordinal(value: date | datetime) -> float:
    """Continuous day number; datetimes carry their time of day as a fraction."""
    if isinstance(value, datetime):
        seconds = value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1e6
        return value.toordinal() + seconds / 86400.0
    return float(value.toordinal())


def datetime_from_ordinal(ordinal: float) -> datetime:
    whole = math.floor(ordinal)
    return datetime.fromordinal(int(whole)) + timedelta(days=ordinal - whole)


# ---------------------- Inputs ----------------------

class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, raw) -> "Side":
        if isinstance(raw, Side):
            return raw
        tag = str(raw).strip().lower() if isinstance(raw, str) else None
        if tag in ("b", "buy"):
            return cls.BUY
        if tag in ("s", "sell"):
            return cls.SELL
        raise InvalidInputError(f"Unknown transaction side: {raw!r}")

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


@dataclass(frozen=True)
class RawTransaction:
    """One buy or sell, as entered by the user."""

    side: Side
    date: CalendarDate
    quantity: int
    price: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "side", Side.parse(self.side))
        object.__setattr__(self, "quantity", positive_quantity(self.quantity))
        price = to_decimal(self.price)
        if price <= 0:
            raise InvalidInputError(f"Transaction price must be positive, got {self.price!r}")
        object.__setattr__(self, "price", price)

    @property
    def signed_quantity(self) -> int:
        return self.quantity * self.side.sign

    @property
    def signed_cost(self) -> Decimal:
        return self.signed_quantity * self.price


@dataclass(frozen=True)
class Bar:
    """One trading day of market data."""

    date: CalendarDate
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("open", "high", "low", "close"):
            if getattr(self, name) is None:
                raise InvalidInputError(f"Bar {self.date} is missing '{name}'")


# ---------------------- Derived records ----------------------

@dataclass(frozen=True)
class DailyPosition:
    """Net trading activity on one calendar date (positive = net bought)."""

    date: CalendarDate
    net_quantity: int
    net_cost: Decimal

    @property
    def average_price(self) -> Optional[Decimal]:
        if self.net_quantity == 0:
            return None
        return abs(self.net_cost / self.net_quantity)

    @property
    def has_position(self) -> bool:
        return self.net_quantity != 0

    def merged(self, other: "DailyPosition") -> "DailyPosition":
        return DailyPosition(
            date=self.date,
            net_quantity=self.net_quantity + other.net_quantity,
            net_cost=self.net_cost + other.net_cost,
        )


@dataclass(frozen=True)
class EnrichedBar:
    """A bar together with the position traded on its date, if any."""

    bar: Bar
    position: Optional[DailyPosition] = None

    @property
    def date(self) -> CalendarDate:
        return self.bar.date

    @property
    def open(self) -> Decimal:
        return self.bar.open

    @property
    def high(self) -> Decimal:
        return self.bar.high

    @property
    def low(self) -> Decimal:
        return self.bar.low

    @property
    def close(self) -> Decimal:
        return self.bar.close

    @property
    def volume(self) -> Optional[int]:
        return self.bar.volume

    @property
    def net_quantity(self) -> Optional[int]:
        return None if self.position is None else self.position.net_quantity

    @property
    def net_cost(self) -> Optional[Decimal]:
        return None if self.position is None else self.position.net_cost

    @property
    def average_price(self) -> Optional[Decimal]:
        return None if self.position is None else self.position.average_price


@dataclass(frozen=True)
class MovingAveragePoint:
    date: CalendarDate
    average: float


@dataclass(frozen=True)
class PositionTotals:
    """Cumulative holdings over the whole series."""

    total_quantity: int = 0
    total_cost: Decimal = ZERO

    @property
    def average_price(self) -> Optional[Decimal]:
        if self.total_quantity == 0:
            return None
        return abs(self.total_cost / self.total_quantity)

    @property
    def has_holdings(self) -> bool:
        return self.average_price is not None


@dataclass(frozen=True)
class VolumeBar:
    date: CalendarDate
    volume: int
    rising: bool


@dataclass(frozen=True)
class CostLinePoint:
    date: CalendarDate
    average_price: Decimal


@dataclass(frozen=True)
class ChartData:
    """Everything one load cycle produces for the renderer."""

    series: Tuple[EnrichedBar, ...]
    moving_average: Tuple[MovingAveragePoint, ...]
    totals: PositionTotals
    volume_bars: Tuple[VolumeBar, ...] = ()
    cost_line: Tuple[CostLinePoint, ...] = ()
    dropped: Tuple[CalendarDate, ...] = field(default_factory=tuple)

    @property
    def positioned(self) -> List[EnrichedBar]:
        return [point for point in self.series if point.position is not None]
