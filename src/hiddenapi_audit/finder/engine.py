from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, TextIO

from hiddenapi_audit.finder.aggregator import AccessAggregator
from hiddenapi_audit.finder.reflection import ReflectionCandidateGenerator
from hiddenapi_audit.finder.report import ReportGenerator
from hiddenapi_audit.finder.scanner import DexUnit, InstructionScanner
from hiddenapi_audit.knowledge.hidden_api import HiddenApiClassifier
from hiddenapi_audit.models.findings import HiddenApiStats
from hiddenapi_audit.telemetry import record_stats, set_attributes, span
from hiddenapi_audit.utils.class_filter import ClassFilter

logger = logging.getLogger(__name__)


class HiddenApiFinder:
    """Finds hidden API uses by linkage and by suspected reflection.

    ``run`` scans every unit into the finder's own aggregator; ``dump`` renders
    the report afterwards. A finder holds the state of exactly one audit run.
    """

    def __init__(
        self,
        classifier: HiddenApiClassifier,
        max_reflection_candidates: Optional[int] = None,
        on_unit_scanned: Optional[Callable[[str, int], None]] = None,
    ) -> None:
        self.classifier = classifier
        self.aggregator = AccessAggregator()
        self.scanner = InstructionScanner(classifier, self.aggregator)
        self.reflection = ReflectionCandidateGenerator(
            classifier, max_candidates=max_reflection_candidates
        )
        self.report = ReportGenerator(classifier)
        self.on_unit_scanned = on_unit_scanned

    def run(self, units: Iterable[DexUnit], class_filter: ClassFilter) -> None:
        with span("hiddenapi.run") as run_span:
            for unit in units:
                with unit as opened:
                    with span("hiddenapi.scan_unit", unit=opened.name) as current:
                        scanned = self.scanner.scan_unit(opened, class_filter.matches)
                        set_attributes(current, methods=scanned)
                if self.on_unit_scanned:
                    self.on_unit_scanned(unit.name, scanned)
            set_attributes(run_span, **self.aggregator.summary())
        logger.info("Collected %s", self.aggregator.summary())

    def dump(self, sink: TextIO, stats: HiddenApiStats, dump_reflection: bool = True) -> None:
        # Render fully before touching the sink or the caller's stats, so a
        # failure never leaves a partial report behind.
        working = stats.copy()
        with span("hiddenapi.dump", dump_reflection=dump_reflection) as current:
            reflection = self.reflection.generate(self.aggregator) if dump_reflection else ()
            text = self.report.render(self.aggregator, working, reflection)
            record_stats(current, working)
        sink.write(text)
        stats.update_from(working)
