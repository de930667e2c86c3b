from __future__ import annotations

from hiddenapi_audit.telemetry.tracing import (
    init_telemetry,
    record_stats,
    set_attributes,
    set_run_context,
    span,
)

__all__ = ["init_telemetry", "record_stats", "set_attributes", "set_run_context", "span"]
