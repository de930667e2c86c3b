from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from hiddenapi_audit.errors import CandidateLimitExceeded
from hiddenapi_audit.finder.aggregator import AccessAggregator
from hiddenapi_audit.knowledge.hidden_api import HiddenApiClassifier
from hiddenapi_audit.models.findings import Finding
from hiddenapi_audit.models.hidden_api import SignatureSource

logger = logging.getLogger(__name__)


class ReflectionCandidateGenerator:
    """Pairs every collected class with every collected literal.

    A finding's locations are those of the literal alone, regardless of which
    class it paired with, so a literal used in several unrelated places is
    attributed to each restricted member it can name.
    """

    def __init__(
        self,
        classifier: HiddenApiClassifier,
        max_candidates: Optional[int] = None,
    ) -> None:
        self.classifier = classifier
        self.max_candidates = max_candidates

    def candidate_classes(self, aggregator: AccessAggregator) -> List[str]:
        # A class the classifier knows no members of cannot form a reportable pair.
        return [cls for cls in sorted(aggregator.classes) if self.classifier.owns_members(cls)]

    def generate(self, aggregator: AccessAggregator) -> Iterator[Finding]:
        classes = self.candidate_classes(aggregator)
        strings = sorted(aggregator.strings)
        pairs = len(classes) * len(strings)
        if self.max_candidates is not None and pairs > self.max_candidates:
            raise CandidateLimitExceeded(self.max_candidates, pairs)
        logger.debug(
            "Checking %d reflection candidates (%d of %d classes, %d strings)",
            pairs,
            len(classes),
            len(aggregator.classes),
            len(strings),
        )
        for cls in classes:
            for literal in strings:
                full_name = f"{cls}->{literal}"
                if not self._is_reportable(full_name):
                    continue
                yield Finding(
                    kind="Reflection",
                    api_list=self.classifier.api_list(full_name),
                    name=full_name,
                    locations=aggregator.reflection_locations.get(literal, []),
                )

    def _is_reportable(self, name: str) -> bool:
        return (
            self.classifier.attribution_source(name) is not SignatureSource.APP
            and self.classifier.should_report(name)
        )
