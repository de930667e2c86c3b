from __future__ import annotations

import io

import pytest
from fakes import CONST_STRING, INVOKE_VIRTUAL, RETURN_VOID, FakeClass, FakeClassifier, FakeMethod, FakeUnit, ins
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from hiddenapi_audit.errors import CandidateLimitExceeded
from hiddenapi_audit.finder import HiddenApiFinder
from hiddenapi_audit.knowledge.hidden_api import HiddenApiDatabase
from hiddenapi_audit.models.findings import HiddenApiStats
from hiddenapi_audit.models.hidden_api import ApiCategory, ApiList
from hiddenapi_audit.telemetry import tracing
from hiddenapi_audit.utils.class_filter import ClassFilter


def _scenario_unit() -> FakeUnit:
    method = FakeMethod(
        "app.dex",
        0,
        "La/B;->m()V",
        [
            ins(0, INVOKE_VIRTUAL, 0),
            ins(3, CONST_STRING, 0),
            ins(5, INVOKE_VIRTUAL, 0),
            ins(8, RETURN_VOID),
        ],
    )
    return FakeUnit(
        "app.dex",
        types=["La/B;", "Lplat/Hidden;", "V", "I"],
        strings=["secretField"],
        methods=["Lplat/Hidden;->x()V"],
        classes=[FakeClass("La/B;", [method])],
    )


def _scenario_database() -> HiddenApiDatabase:
    return HiddenApiDatabase(
        {
            "Lplat/Hidden;->x()V": ApiList(category=ApiCategory.BLOCKED),
            "La/B;->secretField:I": ApiList(category=ApiCategory.UNSUPPORTED),
        }
    )


EXPECTED_REPORT = (
    "#1: Linking blocked Lplat/Hidden;->x()V use(s):\n"
    "       La/B;->m()V (2 occurrences)\n"
    "\n"
    "#2: Reflection unsupported La/B;->secretField potential use(s):\n"
    "       La/B;->m()V\n"
    "\n"
)


def test_end_to_end_linking_and_reflection():
    finder = HiddenApiFinder(_scenario_database())
    finder.run([_scenario_unit()], ClassFilter())
    sink = io.StringIO()
    stats = HiddenApiStats()

    finder.dump(sink, stats, dump_reflection=True)

    assert sink.getvalue() == EXPECTED_REPORT
    assert stats.count == 2
    assert stats.linking_count == 1
    assert stats.reflection_count == 1
    assert stats.api_counts[ApiCategory.BLOCKED] == 1
    assert stats.api_counts[ApiCategory.UNSUPPORTED] == 1


def test_end_to_end_without_reflection():
    finder = HiddenApiFinder(_scenario_database())
    finder.run([_scenario_unit()], ClassFilter())
    sink = io.StringIO()
    stats = HiddenApiStats()

    finder.dump(sink, stats, dump_reflection=False)

    assert sink.getvalue() == EXPECTED_REPORT.split("#2:")[0]
    assert stats.reflection_count == 0


def test_dump_is_deterministic():
    finder = HiddenApiFinder(_scenario_database())
    finder.run([_scenario_unit()], ClassFilter())

    outputs = []
    for _ in range(2):
        sink = io.StringIO()
        finder.dump(sink, HiddenApiStats())
        outputs.append(sink.getvalue())

    assert outputs[0] == outputs[1]


def test_class_filter_limits_method_scan():
    finder = HiddenApiFinder(_scenario_database())
    finder.run([_scenario_unit()], ClassFilter(["com.example"]))
    sink = io.StringIO()

    finder.dump(sink, HiddenApiStats())

    assert sink.getvalue() == ""
    assert "La/B;" in finder.aggregator.classes


def test_units_are_closed_after_scanning_and_on_failure():
    first = _scenario_unit()
    broken = FakeUnit("broken.dex", types=[], fail_on_enter=True)
    never = _scenario_unit()
    finder = HiddenApiFinder(_scenario_database())

    with pytest.raises(RuntimeError):
        finder.run([first, broken, never], ClassFilter())

    assert first.enter_count == 1 and first.exit_count == 1
    assert not first.is_open
    assert never.enter_count == 0


def test_unit_closed_when_scan_raises():
    method = FakeMethod("app.dex", 0, "La/B;->m()V", [ins(0, INVOKE_VIRTUAL, 5)])
    unit = FakeUnit("app.dex", types=[], methods=[], classes=[FakeClass("La/B;", [method])])
    finder = HiddenApiFinder(FakeClassifier())

    with pytest.raises(IndexError):
        finder.run([unit], ClassFilter())

    assert unit.exit_count == 1
    assert not unit.is_open


def test_failed_dump_writes_nothing_and_keeps_stats():
    finder = HiddenApiFinder(_scenario_database(), max_reflection_candidates=0)
    finder.run([_scenario_unit()], ClassFilter())
    sink = io.StringIO()
    stats = HiddenApiStats()

    with pytest.raises(CandidateLimitExceeded):
        finder.dump(sink, stats, dump_reflection=True)

    assert sink.getvalue() == ""
    assert stats == HiddenApiStats()


def test_on_unit_scanned_reports_method_counts():
    seen = []
    finder = HiddenApiFinder(_scenario_database(), on_unit_scanned=lambda name, n: seen.append((name, n)))

    finder.run([_scenario_unit()], ClassFilter())

    assert seen == [("app.dex", 1)]


def test_spans_carry_scan_and_finding_counts(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing.trace, "get_tracer", lambda name, *args, **kwargs: provider.get_tracer(name))

    finder = HiddenApiFinder(_scenario_database())
    finder.run([_scenario_unit()], ClassFilter())
    finder.dump(io.StringIO(), HiddenApiStats())

    spans = {span.name: span.attributes for span in exporter.get_finished_spans()}
    assert spans["hiddenapi.scan_unit"]["hiddenapi.unit"] == "app.dex"
    assert spans["hiddenapi.scan_unit"]["hiddenapi.methods"] == 1
    assert spans["hiddenapi.run"]["hiddenapi.strings"] == 1
    dump = spans["hiddenapi.dump"]
    assert dump["hiddenapi.findings"] == 2
    assert dump["hiddenapi.linking"] == 1
    assert dump["hiddenapi.reflection"] == 1
    assert dump["hiddenapi.api_list.blocked"] == 1
    assert "hiddenapi.api_list.sdk" not in dump
