from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Set

from hiddenapi_audit.models.findings import CallSite


@dataclass
class AccessAggregator:
    """Run-wide accumulation of everything the scanner observed.

    Nothing is ever removed. Duplicate call sites are kept on purpose: the
    report turns them into occurrence counts.
    """

    method_locations: Dict[str, List[CallSite]] = field(default_factory=dict)
    field_locations: Dict[str, List[CallSite]] = field(default_factory=dict)
    classes: Set[str] = field(default_factory=set)
    strings: Set[str] = field(default_factory=set)
    reflection_locations: Dict[str, List[CallSite]] = field(default_factory=dict)

    def record_method_access(self, name: str, site: CallSite) -> None:
        self.method_locations.setdefault(name, []).append(site)

    def record_field_access(self, name: str, site: CallSite) -> None:
        self.field_locations.setdefault(name, []).append(site)

    def record_class(self, descriptor: str) -> None:
        self.classes.add(descriptor)

    def record_string(self, literal: str, site: CallSite) -> None:
        self.strings.add(literal)
        self.reflection_locations.setdefault(literal, []).append(site)

    def summary(self) -> Dict[str, int]:
        return {
            "methods": len(self.method_locations),
            "fields": len(self.field_locations),
            "classes": len(self.classes),
            "strings": len(self.strings),
        }
