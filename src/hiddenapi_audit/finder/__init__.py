from __future__ import annotations

from hiddenapi_audit.finder.aggregator import AccessAggregator
from hiddenapi_audit.finder.engine import HiddenApiFinder
from hiddenapi_audit.finder.opcodes import OpcodeKind, classify_opcode
from hiddenapi_audit.finder.reflection import ReflectionCandidateGenerator
from hiddenapi_audit.finder.report import ReportGenerator, dump_summary
from hiddenapi_audit.finder.scanner import InstructionScanner

__all__ = [
    "AccessAggregator",
    "HiddenApiFinder",
    "InstructionScanner",
    "OpcodeKind",
    "ReflectionCandidateGenerator",
    "ReportGenerator",
    "classify_opcode",
    "dump_summary",
]
