# -*- coding: utf-8 -*-
import json
from datetime import date

import pandas as pd
import streamlit as st

from chart_models import ChartError, InvalidInputError, NoDataError
from chart_scales import build_scales
from chart_utils import PositionChartConfig, build_position_chart
from crosshair import format_totals, inspect
from fetch_prices import bars_from_frame, decode_chart_document, fetch_price_frame, parse_transactions
from position_engine import UNMATCHED_POLICIES, build_chart_data
from ui_common import (
    configure_logging,
    decode_display_params,
    display_params_from_mapping,
    load_settings,
    save_settings,
)

CHART_WIDTH = 1000
CHART_HEIGHT = 500

TRANSACTION_COLUMNS = ["side", "date", "quantity", "price"]


@st.cache_data(show_spinner=False)
def load_price_frame(ticker: str, start: str, end: str) -> pd.DataFrame:
    return fetch_price_frame(ticker, start, end)


def _transactions_frame(rows: list) -> pd.DataFrame:
    records = []
    for row in rows:
        if isinstance(row, dict):
            records.append({key: row.get(key) for key in TRANSACTION_COLUMNS})
        else:
            records.append(dict(zip(TRANSACTION_COLUMNS, row)))
    return pd.DataFrame(records, columns=TRANSACTION_COLUMNS)


def _transaction_rows(frame: pd.DataFrame) -> list:
    frame = frame.dropna()
    return [
        [str(row.side), str(row.date)[:10], float(row.quantity), float(row.price)]
        for row in frame.itertuples(index=False)
    ]


st.set_page_config(page_title="Position Chart", layout="wide")

settings = load_settings()
view = st.query_params.get("view")
if view:
    params = decode_display_params(view)
else:
    params = display_params_from_mapping(
        {"anon": settings["anonymize"], "window": settings["window"], "unmatched": settings["unmatched"]}
    )

st.title("Price chart with my transactions")

with st.sidebar:
    st.header("Data")
    ticker = st.text_input("Ticker", value=settings["ticker"])
    start = st.date_input("Download from", value=date.fromisoformat(settings["start_date"]))
    end_default = settings.get("end_date")
    end = st.date_input("Download until", value=date.fromisoformat(end_default) if end_default else date.today())
    uploaded = st.file_uploader("...or a chart JSON document", type=["json"])

    st.header("Display")
    after = st.date_input("Only after", value=params.after)
    before = st.date_input("Up to and including", value=params.before)
    window = st.number_input(
        "Moving average lookback (bars)",
        min_value=0,
        max_value=400,
        value=params.window,
        step=1,
    )
    anonymize = st.checkbox("Hide position sizes", value=params.anonymize)
    unmatched = st.selectbox(
        "Transactions on non-trading days",
        options=list(UNMATCHED_POLICIES),
        index=list(UNMATCHED_POLICIES).index(params.unmatched),
    )
    debug = st.checkbox("Debug logging", value=params.debug)

configure_logging(debug)

st.subheader("Transactions")
edited = st.data_editor(
    _transactions_frame(settings.get("transactions", [])),
    num_rows="dynamic",
    use_container_width=True,
)

if st.button("Save settings"):
    save_settings(
        {
            "ticker": ticker,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "window": int(window),
            "anonymize": anonymize,
            "unmatched": unmatched,
            "transactions": _transaction_rows(edited),
        }
    )
    st.success("Settings saved.")

try:
    transactions = parse_transactions(_transaction_rows(edited))
    if uploaded is not None:
        bars, document_txns = decode_chart_document(json.load(uploaded))
        transactions = transactions or document_txns
    else:
        bars = bars_from_frame(load_price_frame(ticker, start.isoformat(), end.isoformat()))
    data = build_chart_data(
        bars,
        transactions,
        after=after,
        before=before,
        window=int(window),
        unmatched=unmatched,
    )
except NoDataError as exc:
    st.info(f"Nothing to plot: {exc}")
    st.stop()
except (InvalidInputError, ValueError) as exc:
    st.error(f"Could not load chart data: {exc}")
    st.stop()

if data.dropped:
    st.warning("No trading day for transactions on: " + ", ".join(day.isoformat() for day in data.dropped))

scales = build_scales(data, CHART_WIDTH, CHART_HEIGHT)
chart = build_position_chart(data, scales, PositionChartConfig(target_label=ticker, anonymize=anonymize))
if chart is not None:
    st.altair_chart(chart, use_container_width=True)

totals_legend = format_totals(data.totals, data.series[-1].close, anonymize=anonymize)
if totals_legend is not None:
    delta = None if totals_legend.tone == "flat" else f"{totals_legend.delta_pct:+.1f}%"
    st.metric("Held at average cost", totals_legend.text, delta=delta)

st.subheader("Inspect")
pointer_x = st.slider("Pointer position (px)", min_value=0, max_value=CHART_WIDTH, value=CHART_WIDTH)
try:
    reading = inspect(data.series, scales, float(pointer_x), anonymize=anonymize)
except ChartError as exc:
    st.error(str(exc))
else:
    st.caption(f"Crosshair at ({reading.x:.0f}, {reading.y:.0f})")
    st.table(pd.DataFrame(reading.legend, columns=["", "value"]).set_index(""))
