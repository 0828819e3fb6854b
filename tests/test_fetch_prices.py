import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pandas as pd
import pytest

import fetch_prices
from chart_models import InvalidInputError, Side


def test_default_output_path_uses_market_data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(fetch_prices, "DEFAULT_OUTPUT_DIR", tmp_path)
    path = fetch_prices._default_output_path("TSLA", "2024-01-01", "2024-01-31", "1d")
    assert path.parent == tmp_path
    assert path.name == "TSLA_2024-01-01_2024-01-31_1d.csv"


def _download_frame() -> pd.DataFrame:
    dates = pd.date_range("2024-01-01", periods=2, freq="D")
    return pd.DataFrame(
        {
            "Open": [10.0, 11.0],
            "High": [11.0, 12.0],
            "Low": [9.5, 10.5],
            "Close": [10.5, 11.5],
            "Adj Close": [10.4, 11.4],
            "Volume": [1000, 1200],
        },
        index=dates,
    )


def test_main_writes_csv_readable_as_bars(monkeypatch, tmp_path):
    def fake_download(*args, **kwargs):
        return _download_frame()

    monkeypatch.setattr(fetch_prices.yf, "download", fake_download)
    output = tmp_path / "prices.csv"

    exit_code = fetch_prices.main(
        [
            "TSLA",
            "--start",
            "2024-01-01",
            "--end",
            "2024-01-03",
            "--output",
            str(output),
        ]
    )
    assert exit_code == 0
    written = pd.read_csv(output)
    assert list(written.columns) == [
        "date",
        "adj_close",
        "close",
        "high",
        "low",
        "open",
        "volume",
    ]

    bars = fetch_prices.read_bars_csv(output)
    assert [bar.date for bar in bars] == [date(2024, 1, 1), date(2024, 1, 2)]
    assert bars[1].close == Decimal("11.5")
    assert bars[1].volume == 1200


def test_fetch_price_frame_errors_when_empty(monkeypatch):
    def fake_download(*args, **kwargs):
        return pd.DataFrame()

    monkeypatch.setattr(fetch_prices.yf, "download", fake_download)
    with pytest.raises(ValueError):
        fetch_prices.fetch_price_frame("TSLA", "2024-01-01", "2024-01-10", "1d")


def test_bars_from_frame_skips_incomplete_rows_and_sorts():
    frame = pd.DataFrame(
        {
            "date": ["2024-01-03", "2024-01-01", "2024-01-02"],
            "open": [3.0, 1.0, None],
            "high": [3.0, 1.0, 2.0],
            "low": [3.0, 1.0, 2.0],
            "close": [3.0, 1.0, 2.0],
            "volume": [None, 100, 200],
        }
    )
    bars = fetch_prices.bars_from_frame(frame)
    assert [bar.date for bar in bars] == [date(2024, 1, 1), date(2024, 1, 3)]
    assert bars[1].volume is None


def test_read_bars_csv_requires_ohlc_columns(tmp_path):
    csv_path = tmp_path / "prices.csv"
    csv_path.write_text("date,close\n2024-01-01,10\n", encoding="utf-8")
    with pytest.raises(ValueError):
        fetch_prices.read_bars_csv(csv_path)


def test_read_bars_csv_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        fetch_prices.read_bars_csv(tmp_path / "missing.csv")


def test_parse_transactions_accepts_lists_and_dicts():
    txns = fetch_prices.parse_transactions(
        [
            ["b", "2020-12-08", 15, 208.333],
            {"side": "sell", "date": "2021-01-08", "quantity": "3", "price": "284.860"},
        ]
    )
    assert txns[0].side is Side.BUY
    assert txns[0].price == Decimal("208.333")
    assert txns[1].side is Side.SELL
    assert txns[1].quantity == 3
    assert txns[1].date == date(2021, 1, 8)


@pytest.mark.parametrize(
    "row",
    [
        ["x", "2021-01-08", 3, 10],
        ["b", "2021-01-08", 3],
        {"side": "b", "date": "2021-01-08", "quantity": 3},
        ["b", "2021-01-08", "three", 10],
    ],
)
def test_parse_transaction_rejects_malformed_rows(row):
    with pytest.raises(InvalidInputError):
        fetch_prices.parse_transaction(row)


@pytest.mark.parametrize(
    "quantity, price",
    [
        (1.5, 10),
        ("2.5", 10),
        (0, 10),
        (-3, 10),
        (3, 0),
        (3, -10),
        (3, "-0.01"),
    ],
)
def test_parse_transaction_rejects_bad_quantity_or_price(quantity, price):
    with pytest.raises(InvalidInputError):
        fetch_prices.parse_transaction(["b", "2021-01-08", quantity, price])


def test_parse_transaction_accepts_whole_float_quantity():
    txn = fetch_prices.parse_transaction(["s", "2021-01-08", 4.0, 12.5])
    assert txn.quantity == 4
    assert isinstance(txn.quantity, int)
    assert txn.price == Decimal("12.5")


def test_read_transactions_requires_array(tmp_path):
    path = tmp_path / "txns.json"
    path.write_text(json.dumps({"side": "b"}), encoding="utf-8")
    with pytest.raises(ValueError):
        fetch_prices.read_transactions(path)


def _stamp(year, month, day, hour=14, minute=30) -> int:
    return int(datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp())


def test_load_chart_document(tmp_path):
    document = {
        "chart": {
            "result": [
                {
                    "meta": {"gmtoffset": -18000},
                    "timestamp": [_stamp(2021, 1, 4), _stamp(2021, 1, 5), _stamp(2021, 1, 6)],
                    "indicators": {
                        "quote": [
                            {
                                "open": [99.0, None, 119.0],
                                "high": [101.0, 111.0, 121.0],
                                "low": [98.0, 109.0, 118.0],
                                "close": [100.0, 110.0, 120.0],
                                "volume": [5000, 6000, None],
                            }
                        ]
                    },
                }
            ]
        },
        "txns": [["b", "2021-01-06", 10, 95]],
    }
    path = tmp_path / "sample-data.json"
    path.write_text(json.dumps(document), encoding="utf-8")

    bars, txns = fetch_prices.load_chart_document(path)

    assert [bar.date for bar in bars] == [date(2021, 1, 4), date(2021, 1, 6)]
    assert bars[0].volume == 5000
    assert bars[1].volume is None
    assert len(txns) == 1 and txns[0].quantity == 10


def test_decode_chart_document_rejects_other_shapes():
    with pytest.raises(ValueError):
        fetch_prices.decode_chart_document({"chart": {"result": []}})
