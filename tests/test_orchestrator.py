from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from fakes import CONST_STRING, INVOKE_VIRTUAL, FakeClass, FakeMethod, FakeUnit, ins

from hiddenapi_audit import main as cli
from hiddenapi_audit import orchestrator
from hiddenapi_audit.errors import ClassifierUnavailableError
from hiddenapi_audit.orchestrator import AuditOrchestrator
from hiddenapi_audit.utils.config import default_settings

FLAGS = """\
Landroid/app/ActivityThread;->currentActivityThread()Landroid/app/ActivityThread;,blocked
Landroid/app/Activity;->mToken:Landroid/os/IBinder;,unsupported
Lcom/example/Main;->helper()V,blocked
"""


def _units():
    main = FakeMethod(
        "app.dex",
        0,
        "Lcom/example/Main;->onCreate()V",
        [
            ins(0, INVOKE_VIRTUAL, 0),
            ins(3, INVOKE_VIRTUAL, 1),
            ins(6, CONST_STRING, 0),
            ins(8, CONST_STRING, 1),
        ],
    )
    unit = FakeUnit(
        "app.dex",
        types=["Lcom/example/Main;", "Landroid/app/Activity;"],
        strings=["mToken", "android.app.ActivityThread"],
        methods=[
            "Landroid/app/ActivityThread;->currentActivityThread()Landroid/app/ActivityThread;",
            "Lcom/example/Main;->helper()V",
        ],
        classes=[FakeClass("Lcom/example/Main;", [main])],
        app_signatures=["Lcom/example/Main;->onCreate()V", "Lcom/example/Main;->helper()V"],
    )
    return [unit]


@pytest.fixture
def audit_env(tmp_path: Path, monkeypatch):
    flags = tmp_path / "hiddenapi-flags.csv"
    flags.write_text(FLAGS, encoding="utf-8")
    apk = tmp_path / "app.apk"
    apk.write_bytes(b"placeholder")
    units = _units()
    monkeypatch.setattr(orchestrator, "open_units", lambda paths: units)
    settings = default_settings()
    settings["analysis"]["api_flags"] = str(flags)
    settings["analysis"]["artifacts_dir"] = str(tmp_path / "artifacts")
    return settings, apk, units


EXPECTED = (
    "#1: Linking blocked Landroid/app/ActivityThread;->currentActivityThread()Landroid/app/ActivityThread; use(s):\n"
    "       Lcom/example/Main;->onCreate()V\n"
    "\n"
    "#2: Reflection unsupported Landroid/app/Activity;->mToken potential use(s):\n"
    "       Lcom/example/Main;->onCreate()V\n"
    "\n"
    "2 hidden API(s) used: 1 linked against, 1 through reflection\n"
)


def test_run_writes_report_stats_and_events(audit_env):
    settings, apk, units = audit_env
    sink = io.StringIO()

    result = AuditOrchestrator(settings).run([str(apk)], sink)

    text = sink.getvalue()
    assert text.startswith(EXPECTED)
    assert "       1 in blocked\n" in text
    assert " in sdk\n" not in text
    assert Path(result["report_path"]).read_text(encoding="utf-8") == text
    assert result["stats"]["count"] == 2
    assert result["stats"]["api_counts"]["unsupported"] == 1
    assert all(unit.exit_count == unit.enter_count == 2 for unit in units)

    run_root = Path(result["report_path"]).parent.parent
    stats = json.loads((run_root / "report" / "stats.json").read_text(encoding="utf-8"))
    assert stats["linking_count"] == 1
    events = [
        json.loads(line)
        for line in (run_root / "observability" / "runs" / f"{result['run_id']}.jsonl").read_text().splitlines()
    ]
    event_types = [event["event_type"] for event in events]
    assert event_types[0] == "run.start"
    assert event_types[-1] == "run.end"
    assert {"event_type": "unit.scanned", "unit": "app.dex", "methods": 1}.items() <= events[
        event_types.index("unit.scanned")
    ].items()


def test_missing_classifier_aborts_before_report(audit_env):
    settings, apk, _ = audit_env
    settings["analysis"]["api_flags"] = None
    sink = io.StringIO()

    with pytest.raises(ClassifierUnavailableError):
        AuditOrchestrator(settings).run([str(apk)], sink)

    assert sink.getvalue() == ""


def test_cli_exit_codes(audit_env, capsys):
    settings, apk, _ = audit_env
    args = [
        "--dex-file",
        str(apk),
        "--api-flags",
        settings["analysis"]["api_flags"],
        "--artifacts-dir",
        settings["analysis"]["artifacts_dir"],
        "--no-reflection",
    ]

    assert cli.main(args) == 0
    out = capsys.readouterr().out
    assert out.startswith("#1: Linking blocked")
    assert "Reflection" not in out
    assert "1 hidden API(s) used: 1 linked against, 0 through reflection" in out

    assert cli.main(["--dex-file", str(apk), "--api-flags", str(apk.parent / "nope.csv")]) == 1
    assert "error:" in capsys.readouterr().err
