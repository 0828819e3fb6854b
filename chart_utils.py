"""Altair layers for the annotated price/position chart."""
from __future__ import annotations

from dataclasses import dataclass

import altair as alt
import pandas as pd

from chart_models import ChartData
from chart_scales import ChartScales, LinearScale

GREEN = "#03a678"
RED = "#c0392b"
SEE_THRU_BROWN = "rgba(255, 220, 200, 0.75)"
MA_COLOR = "#FF8900"

default_height = 400


@dataclass
class PositionChartConfig:
    target_label: str
    height: int = default_height
    anonymize: bool = False


def _domain(scale: LinearScale | None):
    if scale is None:
        return alt.Undefined
    return sorted(scale.domain)


def prepare_series_frame(data: ChartData) -> pd.DataFrame:
    """One row per bar, with the moving average and position columns aligned."""
    rows = []
    for point, average in zip(data.series, data.moving_average):
        rows.append(
            {
                "Date": pd.Timestamp(point.date),
                "Open": float(point.open),
                "High": float(point.high),
                "Low": float(point.low),
                "Close": float(point.close),
                "Volume": point.volume,
                "Average": float(average.average),
                "Quantity": point.net_quantity,
                "AvgPrice": None if point.average_price is None else float(point.average_price),
            }
        )
    frame = pd.DataFrame(
        rows,
        columns=["Date", "Open", "High", "Low", "Close", "Volume", "Average", "Quantity", "AvgPrice"],
    )
    return frame


def prepare_volume_frame(data: ChartData) -> pd.DataFrame:
    frame = pd.DataFrame(
        [
            {"Date": pd.Timestamp(bar.date), "Volume": bar.volume, "Color": GREEN if bar.rising else RED}
            for bar in data.volume_bars
        ],
        columns=["Date", "Volume", "Color"],
    )
    return frame


def prepare_position_frame(data: ChartData) -> pd.DataFrame:
    rows = []
    for point in data.positioned:
        average = point.average_price
        if average is None:
            continue
        quantity = point.net_quantity
        rows.append(
            {
                "Date": pd.Timestamp(point.date),
                "AvgPrice": float(average),
                "Size": abs(quantity),
                "Side": "sold" if quantity < 0 else "bought",
                "Color": RED if quantity < 0 else GREEN,
            }
        )
    return pd.DataFrame(rows, columns=["Date", "AvgPrice", "Size", "Side", "Color"])


def build_position_chart(
    data: ChartData,
    scales: ChartScales,
    config: PositionChartConfig,
) -> alt.LayerChart | None:
    series = prepare_series_frame(data)
    if series.empty:
        return None

    x_domain = [pd.Timestamp(day).isoformat() for day in scales.x.domain]
    x = alt.X("Date:T", title="Date", scale=alt.Scale(domain=x_domain))
    price_scale = alt.Scale(domain=_domain(scales.price), zero=False)
    base = alt.Chart(series).encode(x=x)

    tooltip_fields = [
        alt.Tooltip("Date:T", format="%Y-%m-%d"),
        alt.Tooltip("Open:Q", format=",.2f"),
        alt.Tooltip("High:Q", format=",.2f"),
        alt.Tooltip("Low:Q", format=",.2f"),
        alt.Tooltip("Close:Q", format=",.2f"),
        alt.Tooltip("Volume:Q", format="d"),
        alt.Tooltip("AvgPrice:Q", format=",.2f", title="@ price"),
    ]
    if not config.anonymize:
        tooltip_fields.append(alt.Tooltip("Quantity:Q", title="bought (-sold)"))

    price_line = base.mark_line(color="steelblue", strokeWidth=1.5).encode(
        y=alt.Y(
            "Close:Q",
            title=f"{config.target_label} Price ($)",
            scale=price_scale,
            axis=alt.Axis(orient="right", format="$,.2f"),
        ),
    )
    average_line = base.mark_line(
        color=MA_COLOR,
        strokeWidth=1.2,
        interpolate=scales.moving_average_interpolation,
    ).encode(y=alt.Y("Average:Q", scale=price_scale, axis=None))

    layers = [price_line, average_line]

    volume = prepare_volume_frame(data)
    if not volume.empty and scales.volume is not None:
        # Volume is squeezed into the bottom band by widening its domain upwards.
        low, high = _domain(scales.volume)
        band = (scales.volume.range[0] - scales.volume.range[1]) / scales.height
        top = low + (high - low) / band if band and high > low else high
        layers.append(
            alt.Chart(volume)
            .mark_bar(width=1)
            .encode(
                x=x,
                y=alt.Y("Volume:Q", scale=alt.Scale(domain=[low, top]), axis=None),
                color=alt.Color("Color:N", scale=None),
            )
        )

    positions = prepare_position_frame(data)
    if not positions.empty:
        layers.append(
            alt.Chart(positions)
            .mark_tick(thickness=2, orient="horizontal")
            .encode(
                x=x,
                y=alt.Y("AvgPrice:Q", scale=price_scale, axis=None),
                size=alt.Size("Size:Q", scale=alt.Scale(domain=_domain(scales.position)), legend=None),
                color=alt.Color("Color:N", scale=None),
                tooltip=[
                    alt.Tooltip("Date:T", format="%Y-%m-%d"),
                    alt.Tooltip("Side:N"),
                    alt.Tooltip("AvgPrice:Q", format=",.2f", title="@ price"),
                    *([] if config.anonymize else [alt.Tooltip("Size:Q", title="quantity")]),
                ],
            )
        )

    if data.cost_line:
        cost = pd.DataFrame(
            [{"Date": pd.Timestamp(p.date), "AvgPrice": float(p.average_price)} for p in data.cost_line]
        )
        layers.append(
            alt.Chart(cost)
            .mark_line(color=SEE_THRU_BROWN, strokeWidth=2)
            .encode(x=x, y=alt.Y("AvgPrice:Q", scale=price_scale, axis=None))
        )

    hover_overlay = base.mark_rule(opacity=0).encode(tooltip=tooltip_fields)
    layers.append(hover_overlay)

    return alt.layer(*layers).resolve_scale(y="independent").properties(height=config.height).interactive()
