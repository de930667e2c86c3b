from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, TextIO

from hiddenapi_audit.analyzers.dex_units import AndroguardDexUnit, open_units
from hiddenapi_audit.errors import ClassifierUnavailableError, HiddenApiError, UnitLoadError
from hiddenapi_audit.finder import HiddenApiFinder, dump_summary
from hiddenapi_audit.knowledge.hidden_api import HiddenApiDatabase
from hiddenapi_audit.models.findings import HiddenApiStats
from hiddenapi_audit.observability.logger import EventLogger
from hiddenapi_audit.telemetry import set_run_context, span
from hiddenapi_audit.utils.artifact_store import ArtifactStore
from hiddenapi_audit.utils.class_filter import ClassFilter

logger = logging.getLogger(__name__)

REPORT_PATH = "report/hidden_api_report.txt"
STATS_PATH = "report/stats.json"


def load_classifier(settings: Dict[str, Any]) -> HiddenApiDatabase:
    analysis = settings.get("analysis", {})
    flags_path = analysis.get("api_flags")
    if not flags_path:
        raise ClassifierUnavailableError("No hidden API flags file configured (analysis.api_flags)")
    return HiddenApiDatabase.load(flags_path, exclude_api_lists=analysis.get("exclude_api_lists") or ())


def register_app_signatures(classifier: HiddenApiDatabase, units: Sequence[AndroguardDexUnit]) -> int:
    """Mark everything the app defines as app-owned so it is never reported."""
    total = 0
    for unit in units:
        with unit as opened:
            total += classifier.add_app_signatures(opened.app_signatures())
    return total


class AuditOrchestrator:
    def __init__(self, settings: Dict[str, Any]) -> None:
        self.settings = settings

    def run(self, inputs: List[str], sink: TextIO) -> Dict[str, Any]:
        if not inputs:
            raise ValueError("At least one dex or apk file is required.")
        analysis = self.settings["analysis"]
        missing = [path for path in inputs if not Path(path).is_file()]
        if missing:
            raise UnitLoadError(f"Input not found: {', '.join(missing)}")
        analysis_id = ArtifactStore.compute_analysis_id(inputs)
        run_id = set_run_context(analysis_id)
        artifact_store = ArtifactStore(analysis["artifacts_dir"], analysis_id, run_id=run_id)
        obs_conf = self.settings.get("observability", {})
        event_logger = EventLogger(
            artifact_store,
            run_id=run_id,
            enabled=obs_conf.get("enabled", True),
        )
        event_logger.log("run.start", inputs=inputs)
        try:
            with span("hiddenapi.audit", inputs=len(inputs)):
                result = self._run(inputs, analysis, artifact_store, event_logger)
        except HiddenApiError as exc:
            event_logger.log("run.failed", error_type=type(exc).__name__, error=str(exc))
            raise
        sink.write(result.pop("text"))
        event_logger.log("run.end", **result["stats"])
        return result

    def _run(
        self,
        inputs: List[str],
        analysis: Dict[str, Any],
        artifact_store: ArtifactStore,
        event_logger: EventLogger,
    ) -> Dict[str, Any]:
        with event_logger.stage("classifier") as stage:
            classifier = load_classifier(self.settings)
            stage["signatures"] = len(classifier)

        units = open_units(inputs)
        with event_logger.stage("app_signatures", units=len(units)) as stage:
            stage["signatures"] = register_app_signatures(classifier, units)

        def on_unit_scanned(name: str, methods: int) -> None:
            event_logger.log("unit.scanned", unit=name, methods=methods)

        finder = HiddenApiFinder(
            classifier,
            max_reflection_candidates=analysis.get("max_reflection_candidates"),
            on_unit_scanned=on_unit_scanned,
        )
        class_filter = ClassFilter(analysis.get("app_class_filter") or [])
        with event_logger.stage("scan", class_filter=list(class_filter.prefixes)) as stage:
            finder.run(units, class_filter)
            stage.update(finder.aggregator.summary())

        stats = HiddenApiStats()
        buffer = io.StringIO()
        dump_reflection = bool(analysis.get("dump_reflection", True))
        with event_logger.stage("dump", dump_reflection=dump_reflection) as stage:
            finder.dump(buffer, stats, dump_reflection=dump_reflection)
            dump_summary(buffer, stats, classifier.is_excluded)
            stage["findings"] = stats.count

        text = buffer.getvalue()
        report_path = artifact_store.write_text(REPORT_PATH, text)
        artifact_store.write_json(STATS_PATH, stats.to_dict())
        logger.info("Report with %d finding(s) written to %s", stats.count, report_path)
        return {
            "analysis_id": artifact_store.analysis_id,
            "run_id": artifact_store.run_id,
            "report_path": str(report_path),
            "stats": stats.to_dict(),
            "text": text,
        }
