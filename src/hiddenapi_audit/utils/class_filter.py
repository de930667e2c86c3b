from __future__ import annotations

from typing import Iterable, Tuple

from hiddenapi_audit.utils.signature_normalize import to_descriptor_prefix


class ClassFilter:
    """Selects which classes get their method bodies scanned.

    An empty filter matches every class.
    """

    def __init__(self, prefixes: Iterable[str] = ()) -> None:
        self.prefixes: Tuple[str, ...] = tuple(
            to_descriptor_prefix(prefix.strip()) for prefix in prefixes if prefix.strip()
        )

    @classmethod
    def parse(cls, value: str | None) -> "ClassFilter":
        if not value:
            return cls()
        return cls(value.split(","))

    def matches(self, descriptor: str) -> bool:
        if not self.prefixes:
            return True
        return any(descriptor.startswith(prefix) for prefix in self.prefixes)

    def __repr__(self) -> str:
        return f"ClassFilter({list(self.prefixes)!r})"
