from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple


class SignatureSource(Enum):
    APP = "app"
    BOOT = "boot"
    UNKNOWN = "unknown"


class ApiCategory(IntEnum):
    """Value lists of the hidden API policy, in histogram order."""

    SDK = 0
    UNSUPPORTED = 1
    BLOCKED = 2
    MAX_TARGET_O = 3
    MAX_TARGET_P = 4
    MAX_TARGET_Q = 5
    MAX_TARGET_R = 6
    MAX_TARGET_S = 7

    @property
    def flag_name(self) -> str:
        return self.name.lower().replace("_", "-")


DOMAIN_FLAGS = ("core-platform-api", "test-api")

CATEGORY_BY_FLAG: Dict[str, ApiCategory] = {
    category.flag_name: category for category in ApiCategory
}
CATEGORY_BY_FLAG.update(
    {
        "whitelist": ApiCategory.SDK,
        "greylist": ApiCategory.UNSUPPORTED,
        "blacklist": ApiCategory.BLOCKED,
        "greylist-max-o": ApiCategory.MAX_TARGET_O,
        "greylist-max-p": ApiCategory.MAX_TARGET_P,
        "greylist-max-q": ApiCategory.MAX_TARGET_Q,
        "greylist-max-r": ApiCategory.MAX_TARGET_R,
        "greylist-max-s": ApiCategory.MAX_TARGET_S,
    }
)


@dataclass(frozen=True)
class ApiList:
    category: Optional[ApiCategory] = None
    domains: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def invalid(cls) -> "ApiList":
        return cls()

    @classmethod
    def from_flags(cls, flags: Tuple[str, ...]) -> "ApiList":
        category: Optional[ApiCategory] = None
        domains = []
        for raw in flags:
            flag = raw.strip()
            if not flag:
                continue
            if flag in DOMAIN_FLAGS:
                domains.append(flag)
                continue
            if flag not in CATEGORY_BY_FLAG:
                raise ValueError(f"Unknown hidden API flag: {flag}")
            if category is not None:
                raise ValueError(f"Multiple value flags in {','.join(flags)}")
            category = CATEGORY_BY_FLAG[flag]
        if category is None:
            raise ValueError(f"No value flag in {','.join(flags)}")
        return cls(category=category, domains=tuple(domains))

    @property
    def is_valid(self) -> bool:
        return self.category is not None

    def __str__(self) -> str:
        if self.category is None:
            return "invalid"
        return ",".join((self.category.flag_name,) + self.domains)
