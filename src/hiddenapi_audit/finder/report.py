from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, Iterable, List, TextIO

from hiddenapi_audit.finder.aggregator import AccessAggregator
from hiddenapi_audit.knowledge.hidden_api import HiddenApiClassifier
from hiddenapi_audit.models.findings import CallSite, Finding, HiddenApiStats
from hiddenapi_audit.models.hidden_api import ApiCategory, ApiList, SignatureSource

# Downstream tooling parses this output; keep the format stable.
LOCATION_PREFIX = "       "


def format_references(references: Iterable[CallSite]) -> List[str]:
    counts = Counter(str(ref) for ref in references)
    lines = []
    for ref_string in sorted(counts):
        line = LOCATION_PREFIX + ref_string
        if counts[ref_string] > 1:
            line += f" ({counts[ref_string]} occurrences)"
        lines.append(line)
    return lines


def format_finding(seq: int, finding: Finding) -> List[str]:
    suffix = "potential use(s):" if finding.kind == "Reflection" else "use(s):"
    header = f"#{seq}: {finding.kind} {finding.api_list} {finding.name} {suffix}"
    return [header, *format_references(finding.locations), ""]


class ReportGenerator:
    def __init__(self, classifier: HiddenApiClassifier) -> None:
        self.classifier = classifier

    def linking_findings(self, locations: Dict[str, List[CallSite]]) -> Iterable[Finding]:
        for name in sorted(locations):
            if self.classifier.attribution_source(name) is SignatureSource.APP:
                # The app may define members that collide with hidden ones.
                continue
            if not self.classifier.should_report(name):
                continue
            yield Finding(
                kind="Linking",
                api_list=self.classifier.api_list(name),
                name=name,
                locations=locations[name],
            )

    def render(
        self,
        aggregator: AccessAggregator,
        stats: HiddenApiStats,
        reflection: Iterable[Finding] = (),
    ) -> str:
        """Render every finding, updating ``stats`` as sequence numbers are assigned."""
        lines: List[str] = []
        passes = (
            self.linking_findings(aggregator.method_locations),
            self.linking_findings(aggregator.field_locations),
            reflection,
        )
        for findings in passes:
            for finding in findings:
                stats.count += 1
                if finding.kind == "Reflection":
                    stats.reflection_count += 1
                else:
                    stats.linking_count += 1
                if finding.api_list.category is not None:
                    stats.api_counts[finding.api_list.category.value] += 1
                lines.extend(format_finding(stats.count, finding))
        return "".join(line + "\n" for line in lines)


def dump_summary(
    sink: TextIO,
    stats: HiddenApiStats,
    is_excluded: Callable[[ApiList], bool] = lambda api_list: False,
) -> None:
    sink.write(
        f"{stats.count} hidden API(s) used: "
        f"{stats.linking_count} linked against, "
        f"{stats.reflection_count} through reflection\n"
    )
    for category in ApiCategory:
        api_list = ApiList(category=category)
        if is_excluded(api_list):
            continue
        sink.write(f"{LOCATION_PREFIX}{stats.api_counts[category.value]} in {api_list}\n")
