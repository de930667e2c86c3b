from __future__ import annotations

import importlib
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Optional

from hiddenapi_audit.errors import UnitLoadError
from hiddenapi_audit.finder.opcodes import OpcodeKind, classify_opcode
from hiddenapi_audit.models.findings import CallSite, Instruction
from hiddenapi_audit.utils.signature_normalize import dex_field_name, dex_method_name

logger = logging.getLogger(__name__)

_CLASSES_DEX_RE = re.compile(r"^classes\d*\.dex$")

_ANDROGUARD_IMPORT_ERROR: Exception | None = None


def _try_import_androguard():
    global _ANDROGUARD_IMPORT_ERROR
    candidates = (
        ("androguard.core.dex", "DEX"),
        ("androguard.core.bytecodes.dvm", "DalvikVMFormat"),
    )
    for module_path, attr in candidates:
        try:
            module = importlib.import_module(module_path)
            dex_cls = getattr(module, attr)
        except Exception as exc:  # pragma: no cover - depends on androguard release
            _ANDROGUARD_IMPORT_ERROR = exc
            continue
        _ANDROGUARD_IMPORT_ERROR = None
        return dex_cls
    return None


def _dex_order(name: str) -> int:
    digits = name[len("classes"):-len(".dex")]
    return int(digits) if digits else 1


class AndroguardMethod:
    def __init__(self, unit_name: str, method: Any) -> None:
        self._unit_name = unit_name
        self._method = method
        self._code = method.get_code()

    def reference(self) -> CallSite:
        return CallSite(
            unit=self._unit_name,
            method_index=int(getattr(self._method, "method_idx", -1)),
            signature=dex_method_name(
                self._method.get_class_name(),
                self._method.get_name(),
                self._method.get_descriptor(),
            ),
        )

    def instruction_bound_pc(self) -> int:
        if self._code is None:
            return 0
        return int(self._code.insns_size)

    def instructions(self) -> Iterator[Instruction]:
        if self._code is None:
            return
        pc = 0
        for ins in self._code.get_bc().get_instructions():
            opcode = ins.get_op_value()
            ref: Optional[int] = None
            if classify_opcode(opcode) is not OpcodeKind.OTHER:
                ref = ins.get_ref_kind()
            yield Instruction(pc=pc, opcode=opcode, ref=ref)
            # androguard lengths are in bytes, dex pcs in 16-bit code units.
            pc += ins.get_length() // 2


class AndroguardClass:
    def __init__(self, unit_name: str, class_def: Any) -> None:
        self._unit_name = unit_name
        self._class_def = class_def
        self.descriptor: str = class_def.get_name()

    def methods(self) -> Iterator[AndroguardMethod]:
        for method in self._class_def.get_methods():
            yield AndroguardMethod(self._unit_name, method)


class AndroguardDexUnit:
    """A single DEX file decoded with androguard while the unit is open."""

    def __init__(self, name: str, loader: Callable[[], bytes]) -> None:
        self.name = name
        self._loader = loader
        self._dex: Any = None
        self._cm: Any = None

    def __enter__(self) -> "AndroguardDexUnit":
        dex_cls = _try_import_androguard()
        if dex_cls is None:
            detail = f": {_ANDROGUARD_IMPORT_ERROR}" if _ANDROGUARD_IMPORT_ERROR else ""
            raise UnitLoadError(f"androguard is required for DEX decoding{detail}")
        try:
            data = self._loader()
        except (OSError, KeyError, zipfile.BadZipFile) as exc:
            raise UnitLoadError(f"Cannot read {self.name}: {exc}") from exc
        try:
            self._dex = dex_cls(data)
            self._cm = self._dex.get_class_manager()
        except Exception as exc:
            self._dex = None
            self._cm = None
            raise UnitLoadError(f"Cannot decode {self.name}: {exc}") from exc
        logger.debug("Opened %s", self.name)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._dex = None
        self._cm = None

    def _require_open(self) -> Any:
        if self._dex is None:
            raise RuntimeError(f"{self.name} is not open")
        return self._dex

    def type_table_size(self) -> int:
        return int(self._require_open().header.type_ids_size)

    def type_descriptor(self, index: int) -> str:
        self._require_open()
        return self._cm.get_type(index)

    def string(self, index: int) -> str:
        self._require_open()
        return self._cm.get_string(index)

    def classes(self, predicate: Callable[[str], bool]) -> Iterator[AndroguardClass]:
        for class_def in self._require_open().get_classes():
            if predicate(class_def.get_name()):
                yield AndroguardClass(self.name, class_def)

    def resolve_method_name(self, index: int) -> str:
        self._require_open()
        ref = self._cm.get_method_ref(index)
        return dex_method_name(ref.get_class_name(), ref.get_name(), ref.get_descriptor())

    def resolve_field_name(self, index: int) -> str:
        self._require_open()
        ref = self._cm.get_field_ref(index)
        return dex_field_name(ref.get_class_name(), ref.get_name(), ref.get_type())

    def app_signatures(self) -> Iterator[str]:
        """Every method and field the unit itself defines."""
        for class_def in self._require_open().get_classes():
            for method in class_def.get_methods():
                yield dex_method_name(
                    method.get_class_name(), method.get_name(), method.get_descriptor()
                )
            for field in class_def.get_fields():
                yield dex_field_name(field.get_class_name(), field.get_name(), field.get_descriptor())


def _file_loader(path: Path) -> Callable[[], bytes]:
    return path.read_bytes


def _zip_entry_loader(path: Path, entry: str) -> Callable[[], bytes]:
    def load() -> bytes:
        with zipfile.ZipFile(path, "r") as archive:
            return archive.read(entry)

    return load


def open_units(paths: Iterable[str | Path]) -> List[AndroguardDexUnit]:
    """Build one unit per DEX file; APKs contribute each of their classes*.dex."""
    units: List[AndroguardDexUnit] = []
    for raw in paths:
        path = Path(raw)
        if not path.is_file():
            raise UnitLoadError(f"Input not found: {path}")
        if zipfile.is_zipfile(path):
            try:
                with zipfile.ZipFile(path, "r") as archive:
                    entries = sorted(
                        (name for name in archive.namelist() if _CLASSES_DEX_RE.match(name)),
                        key=_dex_order,
                    )
            except (zipfile.BadZipFile, OSError) as exc:
                raise UnitLoadError(f"Cannot read archive {path}: {exc}") from exc
            if not entries:
                raise UnitLoadError(f"No classes.dex in {path}")
            for entry in entries:
                units.append(AndroguardDexUnit(f"{path.name}!{entry}", _zip_entry_loader(path, entry)))
        else:
            units.append(AndroguardDexUnit(path.name, _file_loader(path)))
    return units
