"""Result sinks — where surviving scan results go."""

from __future__ import annotations

from certscan.reporting.sink import CollectingSink, ResultSink
from certscan.reporting.webhook import WebhookSink

__all__ = ["CollectingSink", "ResultSink", "WebhookSink"]
