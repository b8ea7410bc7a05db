"""JSONL event sink and per-session Plotly report generator."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from screener.domain.events import ScreenerEvent

REFRESH_OUTCOMES = ("refreshed", "failed", "delisted", "skipped", "rate_limited")


class JsonlEventSink:
    """Append-only JSONL writer."""

    def __init__(self, path: str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.path = output_path

    def emit(self, event: ScreenerEvent) -> None:
        record = event.to_record()
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, sort_keys=True, default=str))
            handle.write("\n")


def load_events(path: str | Path) -> list[dict[str, Any]]:
    """Load JSONL records from disk."""
    records: list[dict[str, Any]] = []
    input_path = Path(path)
    if not input_path.exists():
        return records
    with input_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            text = line.strip()
            if not text:
                continue
            records.append(json.loads(text))
    return records


def tier_refresh_frame(events: list[dict[str, Any]]) -> pd.DataFrame:
    """One row per tier pass and outcome, from `tier_refreshed` payloads."""
    rows: list[dict[str, Any]] = []
    for event in events:
        if event.get("event_type") != "tier_refreshed":
            continue
        payload = event.get("payload", {})
        for outcome in REFRESH_OUTCOMES:
            rows.append(
                {
                    "ts": event.get("ts"),
                    "tier": payload.get("tier", "unknown"),
                    "outcome": outcome,
                    "count": int(payload.get(outcome, 0)),
                    "elapsed_seconds": float(payload.get("elapsed_seconds", 0.0)),
                }
            )
    frame = pd.DataFrame(rows, columns=["ts", "tier", "outcome", "count", "elapsed_seconds"])
    frame["ts"] = pd.to_datetime(frame["ts"], utc=True, errors="coerce")
    return frame


def delisting_frame(events: list[dict[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "ts": event.get("ts"),
            "symbol": event.get("payload", {}).get("symbol", ""),
            "reason": event.get("payload", {}).get("reason", ""),
        }
        for event in events
        if event.get("event_type") == "symbol_delisted"
    ]
    return pd.DataFrame(rows, columns=["ts", "symbol", "reason"])


def generate_plotly_report(events_jsonl_path: str, output_html_path: str) -> None:
    """Render per-tier refresh outcomes over time and the session's delistings."""
    events = load_events(events_jsonl_path)
    output = Path(output_html_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    refreshes = tier_refresh_frame(events)
    delistings = delisting_frame(events)
    figures = [
        _refresh_timeline(refreshes),
        _tier_totals(refreshes),
        _delisting_table(delistings),
    ]
    html_parts = ["<html><head><meta charset='utf-8'><title>screener session report</title></head><body>"]
    for index, figure in enumerate(figures):
        html_parts.append(figure.to_html(full_html=False, include_plotlyjs="cdn" if index == 0 else False))
    html_parts.append("</body></html>")
    output.write_text("".join(html_parts), encoding="utf-8")


def _refresh_timeline(refreshes: pd.DataFrame) -> go.Figure:
    title = "Refresh Timeline"
    if refreshes.empty:
        return _placeholder(title, "no tier refreshes recorded")
    return px.bar(
        refreshes,
        x="ts",
        y="count",
        color="outcome",
        facet_row="tier",
        category_orders={"outcome": list(REFRESH_OUTCOMES)},
        hover_data=["elapsed_seconds"],
        title=title,
    )


def _tier_totals(refreshes: pd.DataFrame) -> go.Figure:
    title = "Outcomes per Tier"
    if refreshes.empty:
        return _placeholder(title, "no tier refreshes recorded")
    totals = refreshes.groupby(["tier", "outcome"], as_index=False)["count"].sum()
    return px.bar(
        totals,
        x="tier",
        y="count",
        color="outcome",
        barmode="group",
        category_orders={"tier": ["high", "medium", "low"], "outcome": list(REFRESH_OUTCOMES)},
        title=title,
    )


def _delisting_table(delistings: pd.DataFrame) -> go.Figure:
    figure = go.Figure(
        data=[
            go.Table(
                header={"values": ["time", "symbol", "reason"]},
                cells={
                    "values": [
                        delistings["ts"].astype(str).tolist(),
                        delistings["symbol"].tolist(),
                        delistings["reason"].tolist(),
                    ]
                },
            )
        ]
    )
    figure.update_layout(title=f"Delisted Symbols ({len(delistings)})")
    return figure


def _placeholder(title: str, message: str) -> go.Figure:
    figure = go.Figure()
    figure.add_annotation(text=message, showarrow=False, x=0.5, y=0.5, xref="paper", yref="paper")
    figure.update_layout(title=title)
    return figure
