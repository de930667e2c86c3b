from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, Protocol, Set

from hiddenapi_audit.errors import ClassifierUnavailableError
from hiddenapi_audit.models.hidden_api import CATEGORY_BY_FLAG, ApiList, SignatureSource
from hiddenapi_audit.utils.signature_normalize import class_of_member, strip_member_type

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_LISTS = ("sdk",)


class HiddenApiClassifier(Protocol):
    def is_known_restricted(self, name: str) -> bool: ...

    def attribution_source(self, name: str) -> SignatureSource: ...

    def api_list(self, name: str) -> ApiList: ...

    def should_report(self, name: str) -> bool: ...

    def owns_members(self, class_desc: str) -> bool: ...


def _canonical_list_name(name: str) -> str:
    name = name.strip()
    category = CATEGORY_BY_FLAG.get(name)
    return category.flag_name if category is not None else name


class HiddenApiDatabase:
    """Hidden API policy loaded from a ``hiddenapi-flags.csv`` file.

    Every member is indexed under its full signature and under its
    member-without-type form (``Lc;->m``), since reflective lookups only carry
    the member name. Owning classes are indexed too so class name literals
    resolve.
    """

    def __init__(
        self,
        api_lists: Dict[str, ApiList],
        exclude_api_lists: Iterable[str] = DEFAULT_EXCLUDED_LISTS,
    ) -> None:
        self._api_lists: Dict[str, ApiList] = {}
        self._boot_members: Set[str] = set()
        self._member_owners: Set[str] = set()
        self._app_members: Set[str] = set()
        self.exclude_api_lists = frozenset(
            _canonical_list_name(item) for item in exclude_api_lists if item.strip()
        )
        for signature, api_list in api_lists.items():
            self._add(signature, api_list)

    @staticmethod
    def load(
        path: str | Path,
        exclude_api_lists: Iterable[str] = DEFAULT_EXCLUDED_LISTS,
    ) -> "HiddenApiDatabase":
        path = Path(path)
        api_lists: Dict[str, ApiList] = {}
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                for line_no, row in enumerate(csv.reader(handle), start=1):
                    if not row or not row[0].strip():
                        continue
                    try:
                        api_lists[row[0].strip()] = ApiList.from_flags(tuple(row[1:]))
                    except ValueError as exc:
                        raise ClassifierUnavailableError(
                            f"{path.name}:{line_no}: {exc}"
                        ) from exc
        except OSError as exc:
            raise ClassifierUnavailableError(f"Cannot read hidden API flags {path}: {exc}") from exc
        except (csv.Error, UnicodeDecodeError) as exc:
            raise ClassifierUnavailableError(f"Malformed hidden API flags {path}: {exc}") from exc
        if not api_lists:
            raise ClassifierUnavailableError(f"Hidden API flags {path} contain no entries")
        logger.info("Loaded %d hidden API signatures from %s", len(api_lists), path)
        return HiddenApiDatabase(api_lists, exclude_api_lists=exclude_api_lists)

    def _add(self, signature: str, api_list: ApiList) -> None:
        self._api_lists[signature] = api_list
        self._boot_members.add(signature)
        short = strip_member_type(signature)
        if short:
            self._api_lists.setdefault(short, api_list)
            self._boot_members.add(short)
        owner = class_of_member(signature)
        if owner:
            self._boot_members.add(owner)
            self._member_owners.add(owner)

    def add_app_signatures(self, signatures: Iterable[str]) -> int:
        added = 0
        for signature in signatures:
            self._app_members.add(signature)
            short = strip_member_type(signature)
            if short:
                self._app_members.add(short)
            added += 1
        return added

    def is_known_restricted(self, name: str) -> bool:
        return name in self._boot_members

    def attribution_source(self, name: str) -> SignatureSource:
        if name in self._app_members:
            return SignatureSource.APP
        if name in self._boot_members:
            return SignatureSource.BOOT
        return SignatureSource.UNKNOWN

    def api_list(self, name: str) -> ApiList:
        return self._api_lists.get(name, ApiList.invalid())

    def should_report(self, name: str) -> bool:
        api_list = self.api_list(name)
        if not api_list.is_valid:
            return False
        return not self.is_excluded(api_list)

    def is_excluded(self, api_list: ApiList) -> bool:
        if api_list.category is not None and api_list.category.flag_name in self.exclude_api_lists:
            return True
        return any(domain in self.exclude_api_lists for domain in api_list.domains)

    def owns_members(self, class_desc: str) -> bool:
        return class_desc in self._member_owners

    def __len__(self) -> int:
        return len(self._api_lists)
