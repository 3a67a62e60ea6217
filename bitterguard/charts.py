from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def disease_doughnut(rows: List[Dict[str, Any]]) -> alt.Chart:
    df = pd.DataFrame(rows, columns=["label", "count", "percentage", "color"])
    return (
        alt.Chart(df)
        .mark_arc(innerRadius=60)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color(
                "label:N",
                title=None,
                scale=alt.Scale(domain=df["label"].tolist(), range=df["color"].tolist()),
                legend=alt.Legend(orient="bottom"),
            ),
            tooltip=[
                alt.Tooltip("label:N", title="Disease"),
                alt.Tooltip("count:Q", title="Scans", format=","),
                alt.Tooltip("percentage:Q", title="Share %", format=".1f"),
            ],
        )
        .properties(height=280)
    )


def scans_line(series: Dict[str, int]) -> alt.Chart:
    df = pd.DataFrame({"date": list(series.keys()), "scans": list(series.values())})
    return (
        alt.Chart(df)
        .mark_area(line={"color": "#4CAF50"}, color="#4CAF50", opacity=0.15, interpolate="monotone")
        .encode(
            x=alt.X("date:T", title=None, axis=alt.Axis(format="%b %d", grid=False)),
            y=alt.Y("scans:Q", title="Scans", axis=alt.Axis(tickMinStep=1, gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[alt.Tooltip("date:T", title="Date", format="%b %d, %Y"), alt.Tooltip("scans:Q", title="Scans")],
        )
        .properties(height=260)
    )
