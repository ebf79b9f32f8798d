"""Logging and metrics for embedcore."""

from __future__ import annotations

from .logging import configure_logging
from .metrics import METRICS, export_prometheus, increment, observe

__all__ = ["METRICS", "configure_logging", "export_prometheus", "increment", "observe"]
