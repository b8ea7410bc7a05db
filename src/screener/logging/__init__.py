"""Logging helpers."""

from .event_sink import JsonlEventSink, generate_plotly_report, load_events
from .logger import HumanLogger

__all__ = ["HumanLogger", "JsonlEventSink", "generate_plotly_report", "load_events"]
