from __future__ import annotations

import os
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from hiddenapi_audit.models.hidden_api import ApiCategory


_ANALYSIS_ID: ContextVar[str | None] = ContextVar("analysis_id", default=None)
_RUN_ID: ContextVar[str | None] = ContextVar("run_id", default=None)
_CATEGORY_NAMES = [category.flag_name for category in ApiCategory]


def init_telemetry(settings: Dict[str, Any]) -> bool:
    conf = settings.get("telemetry", {}) if settings else {}
    if not conf.get("enabled"):
        return False
    service_name = conf.get("service_name", "hiddenapi-audit")
    endpoint = conf.get("otlp_endpoint") or os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return False
    insecure = conf.get("otlp_insecure", True)
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return True


def set_run_context(analysis_id: str) -> str:
    run_id = uuid.uuid4().hex
    _ANALYSIS_ID.set(analysis_id)
    _RUN_ID.set(run_id)
    return run_id


ATTR_PREFIX = "hiddenapi."


@contextmanager
def span(name: str, **attrs: Any):
    """Open a span whose attributes are namespaced under ``hiddenapi.``."""
    tracer = trace.get_tracer("hiddenapi_audit")
    with tracer.start_as_current_span(name) as current:
        _apply_common_attrs(current)
        set_attributes(current, **attrs)
        yield current


def set_attributes(span_obj, **attrs: Any) -> None:
    for key, value in attrs.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            value = [str(item) for item in value]
        span_obj.set_attribute(ATTR_PREFIX + key, value)


def record_stats(span_obj, stats: Any) -> None:
    """Attach the finding counters of a dump to ``span_obj``."""
    set_attributes(
        span_obj,
        findings=stats.count,
        linking=stats.linking_count,
        reflection=stats.reflection_count,
    )
    for category, count in zip(_CATEGORY_NAMES, stats.api_counts):
        if count:
            span_obj.set_attribute(f"{ATTR_PREFIX}api_list.{category}", count)


def _apply_common_attrs(span_obj) -> None:
    analysis_id = _ANALYSIS_ID.get()
    run_id = _RUN_ID.get()
    if analysis_id:
        span_obj.set_attribute(ATTR_PREFIX + "analysis_id", analysis_id)
    if run_id:
        span_obj.set_attribute(ATTR_PREFIX + "run_id", run_id)
