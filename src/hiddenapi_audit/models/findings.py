from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from hiddenapi_audit.models.hidden_api import ApiCategory, ApiList


@dataclass(frozen=True)
class CallSite:
    """A method in a unit where an API use or string literal was seen.

    ``signature`` is the caller's canonical method name and is the textual form
    used when rendering locations.
    """

    unit: str
    method_index: int
    signature: str

    def __str__(self) -> str:
        return self.signature


@dataclass(frozen=True)
class Instruction:
    pc: int
    opcode: int
    ref: Optional[int] = None


@dataclass
class Finding:
    kind: str
    api_list: ApiList
    name: str
    locations: List[CallSite]


@dataclass
class HiddenApiStats:
    count: int = 0
    linking_count: int = 0
    reflection_count: int = 0
    api_counts: List[int] = field(default_factory=lambda: [0] * len(ApiCategory))

    def copy(self) -> "HiddenApiStats":
        return HiddenApiStats(
            count=self.count,
            linking_count=self.linking_count,
            reflection_count=self.reflection_count,
            api_counts=list(self.api_counts),
        )

    def update_from(self, other: "HiddenApiStats") -> None:
        self.count = other.count
        self.linking_count = other.linking_count
        self.reflection_count = other.reflection_count
        self.api_counts = list(other.api_counts)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "linking_count": self.linking_count,
            "reflection_count": self.reflection_count,
            "api_counts": {
                category.flag_name: self.api_counts[category.value] for category in ApiCategory
            },
        }
