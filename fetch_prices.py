"""Download historical price data and decode it, with transactions, into chart inputs."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import yfinance as yf

from chart_models import (
    Bar,
    InvalidInputError,
    RawTransaction,
    Side,
    date_from_timestamp,
    positive_quantity,
    to_calendar_date,
    to_decimal,
)

DEFAULT_OUTPUT_DIR = Path("market_data")
OHLC_COLUMNS = ("open", "high", "low", "close")

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch historical OHLCV data via Yahoo Finance.")
    parser.add_argument("ticker", help="Symbol to download, e.g. TSLA")
    parser.add_argument(
        "--start",
        required=True,
        help="Start date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--end",
        required=True,
        help="End date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--interval",
        default="1d",
        help="Pricing interval understood by yfinance (default: 1d)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional CSV path. Defaults to market_data/<ticker>_<start>_<end>_<interval>.csv",
    )
    return parser.parse_args(argv)


def fetch_price_frame(ticker: str, start: str, end: str, interval: str = "1d") -> pd.DataFrame:
    data = yf.download(ticker, start=start, end=end, interval=interval, progress=False, auto_adjust=False)
    if data.empty:
        raise ValueError(f"No price data returned for {ticker} between {start} and {end}")
    if not isinstance(data.index, pd.DatetimeIndex):
        data = data.set_index(pd.to_datetime(data.index))
    if data.index.name is None:
        data.index.name = "Date"
    frame = data.reset_index()
    frame.columns = [_sanitize_column(col) for col in frame.columns]
    if "date" not in frame.columns:
        raise ValueError("Unexpected response format: missing 'Date' column")
    frame["date"] = pd.to_datetime(frame["date"]).dt.strftime("%Y-%m-%d")
    required = {"open", "high", "low", "close", "adj_close", "volume"}
    missing = required - set(frame.columns)
    if missing:
        raise ValueError(f"Missing expected columns in price data: {sorted(missing)}")
    ordered_cols = ["date"] + sorted(required)
    frame = frame[ordered_cols]
    return frame


def _sanitize_column(column: object) -> str:
    if isinstance(column, tuple):
        column = column[0]
    if column is None:
        return ""
    return str(column).lower().replace(" ", "_")


def _default_output_path(ticker: str, start: str, end: str, interval: str) -> Path:
    ticker_slug = ticker.replace("/", "-")
    filename = f"{ticker_slug}_{start}_{end}_{interval}.csv"
    return DEFAULT_OUTPUT_DIR / filename


# ---------------------- Bars ----------------------

def _optional_volume(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


def _bar_from_values(day: Any, values: Mapping[str, Any]) -> Optional[Bar]:
    """Build a bar, or return None when any OHLC value is missing."""
    if any(values.get(name) is None or pd.isna(values.get(name)) for name in OHLC_COLUMNS):
        return None
    return Bar(
        date=to_calendar_date(day),
        open=to_decimal(values["open"]),
        high=to_decimal(values["high"]),
        low=to_decimal(values["low"]),
        close=to_decimal(values["close"]),
        volume=_optional_volume(values.get("volume")),
    )


def bars_from_frame(frame: pd.DataFrame) -> List[Bar]:
    """Decode a price frame (as written by this module) into date-sorted bars."""
    columns = {col: _sanitize_column(col) for col in frame.columns}
    frame = frame.rename(columns=columns)
    missing = {"date", *OHLC_COLUMNS} - set(frame.columns)
    if missing:
        raise ValueError(f"Missing expected columns in price data: {sorted(missing)}")
    bars: List[Bar] = []
    skipped = 0
    for row in frame.to_dict("records"):
        bar = _bar_from_values(row["date"], row)
        if bar is None:
            skipped += 1
            continue
        bars.append(bar)
    if skipped:
        logger.debug("Skipped %d rows with incomplete OHLC values", skipped)
    bars.sort(key=lambda bar: bar.date)
    return bars


def read_bars_csv(path: Path) -> List[Bar]:
    if not path.exists():
        raise FileNotFoundError(f"Price file '{path}' does not exist")
    return bars_from_frame(pd.read_csv(path))


# ---------------------- Transactions ----------------------

def parse_transaction(row: Any) -> RawTransaction:
    """Decode ``[side, date, quantity, price]`` or a dict with those keys."""
    if isinstance(row, Mapping):
        try:
            side, day, quantity, price = (row[key] for key in ("side", "date", "quantity", "price"))
        except KeyError as exc:
            raise InvalidInputError(f"Transaction is missing {exc.args[0]!r}: {row!r}") from exc
    elif isinstance(row, (list, tuple)) and len(row) == 4:
        side, day, quantity, price = row
    else:
        raise InvalidInputError(f"Transaction must be [side, date, quantity, price], got {row!r}")
    return RawTransaction(
        side=Side.parse(side),
        date=to_calendar_date(day),
        quantity=positive_quantity(quantity),
        price=to_decimal(price),
    )


def parse_transactions(rows: Iterable[Any]) -> List[RawTransaction]:
    return [parse_transaction(row) for row in rows]


def read_transactions(path: Path) -> List[RawTransaction]:
    if not path.exists():
        raise FileNotFoundError(f"Transaction file '{path}' does not exist")
    with path.open("r", encoding="utf-8") as fh:
        rows = json.load(fh)
    if not isinstance(rows, list):
        raise ValueError("Expected a JSON array of transactions")
    return parse_transactions(rows)


# ---------------------- Chart documents ----------------------

def decode_chart_document(document: Mapping[str, Any]) -> Tuple[List[Bar], List[RawTransaction]]:
    """Decode a Yahoo chart API response, plus an optional ``txns`` array."""
    try:
        result = document["chart"]["result"][0]
        timestamps = result["timestamp"]
        quote = result["indicators"]["quote"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError("Unexpected chart document format") from exc
    gmtoffset = int(result.get("meta", {}).get("gmtoffset", 0) or 0)

    bars: List[Bar] = []
    for index, seconds in enumerate(timestamps):
        values = {name: _column_value(quote, name, index) for name in (*OHLC_COLUMNS, "volume")}
        bar = _bar_from_values(date_from_timestamp(seconds, gmtoffset), values)
        if bar is not None:
            bars.append(bar)
    transactions = parse_transactions(document.get("txns") or [])
    return bars, transactions


def _column_value(quote: Mapping[str, Any], name: str, index: int) -> Any:
    column = quote.get(name) or []
    return column[index] if index < len(column) else None


def load_chart_document(path: Path) -> Tuple[List[Bar], List[RawTransaction]]:
    if not path.exists():
        raise FileNotFoundError(f"Chart document '{path}' does not exist")
    with path.open("r", encoding="utf-8") as fh:
        return decode_chart_document(json.load(fh))


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    output_path = args.output or _default_output_path(args.ticker, args.start, args.end, args.interval)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    frame = fetch_price_frame(args.ticker, args.start, args.end, args.interval)
    frame.to_csv(output_path, index=False)
    print(f"Saved {len(frame)} rows to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
