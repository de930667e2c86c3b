from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

from hiddenapi_audit.finder.aggregator import AccessAggregator
from hiddenapi_audit.finder.opcodes import OpcodeKind, classify_opcode
from hiddenapi_audit.knowledge.hidden_api import HiddenApiClassifier
from hiddenapi_audit.models.findings import CallSite, Instruction
from hiddenapi_audit.utils.signature_normalize import to_internal_name

logger = logging.getLogger(__name__)


class MethodHandle(Protocol):
    def instructions(self) -> Iterable[Instruction]: ...

    def instruction_bound_pc(self) -> int: ...

    def reference(self) -> CallSite: ...


class ClassHandle(Protocol):
    descriptor: str

    def methods(self) -> Iterable[MethodHandle]: ...


class DexUnit(Protocol):
    """One compiled unit, which also resolves its own reference indices.

    Units are context managers; decoded structures only live between enter
    and exit.
    """

    name: str

    def __enter__(self) -> "DexUnit": ...

    def __exit__(self, *exc_info: Any) -> None: ...

    def type_table_size(self) -> int: ...

    def type_descriptor(self, index: int) -> str: ...

    def string(self, index: int) -> str: ...

    def classes(self, predicate: Callable[[str], bool]) -> Iterable[ClassHandle]: ...

    def resolve_method_name(self, index: int) -> str: ...

    def resolve_field_name(self, index: int) -> str: ...


class InstructionScanner:
    def __init__(self, classifier: HiddenApiClassifier, aggregator: AccessAggregator) -> None:
        self.classifier = classifier
        self.aggregator = aggregator

    def scan_unit(self, unit: DexUnit, predicate: Callable[[str], bool]) -> int:
        """Scan one opened unit and return the number of method bodies visited."""
        # Any type referenced by the unit may be looked up through reflection,
        # whether or not its class passes the filter.
        for index in range(unit.type_table_size()):
            self.aggregator.record_class(unit.type_descriptor(index))

        scanned = 0
        for handle in unit.classes(predicate):
            for method in handle.methods():
                self.scan_method(unit, method)
                scanned += 1
        logger.debug("Scanned %d method bodies in %s", scanned, unit.name)
        return scanned

    def scan_method(self, unit: DexUnit, method: MethodHandle) -> None:
        max_pc = method.instruction_bound_pc()
        site = method.reference()
        for ins in method.instructions():
            if ins.pc >= max_pc:
                # Code item is truncated or malformed; never read past it.
                break
            kind = classify_opcode(ins.opcode)
            if kind is OpcodeKind.STRING_CONSTANT:
                self.classify_literal(unit.string(ins.ref), site)
            elif kind is OpcodeKind.METHOD_INVOKE:
                self.aggregator.record_method_access(unit.resolve_method_name(ins.ref), site)
            elif kind is OpcodeKind.INSTANCE_FIELD or kind is OpcodeKind.STATIC_FIELD:
                self.aggregator.record_field_access(unit.resolve_field_name(ins.ref), site)

    def classify_literal(self, literal: str, site: CallSite) -> None:
        # A field, method or class name never contains a space.
        if " " in literal:
            return
        internal = to_internal_name(literal)
        if self.classifier.is_known_restricted(internal):
            self.aggregator.record_class(internal)
        elif self.classifier.is_known_restricted(literal):
            # Already in descriptor form, e.g. a class name handed to JNI.
            self.aggregator.record_class(literal)
        else:
            self.aggregator.record_string(literal, site)
