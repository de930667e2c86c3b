from __future__ import annotations

from enum import Enum
from typing import Dict


class OpcodeKind(Enum):
    STRING_CONSTANT = "string_constant"
    METHOD_INVOKE = "method_invoke"
    INSTANCE_FIELD = "instance_field"
    STATIC_FIELD = "static_field"
    OTHER = "other"


CONST_STRING = 0x1A
CONST_STRING_JUMBO = 0x1B

# iget, iget-wide, iget-object, iget-boolean, iget-byte, iget-char, iget-short,
# then the matching iput forms.
IGET_FIRST, IPUT_LAST = 0x52, 0x5F
# sget* then sput*, same value-kind order.
SGET_FIRST, SPUT_LAST = 0x60, 0x6D
# invoke-virtual, -super, -direct, -static, -interface.
INVOKE_FIRST, INVOKE_LAST = 0x6E, 0x72
INVOKE_RANGE_FIRST, INVOKE_RANGE_LAST = 0x74, 0x78


def _build_table() -> Dict[int, OpcodeKind]:
    table: Dict[int, OpcodeKind] = {
        CONST_STRING: OpcodeKind.STRING_CONSTANT,
        CONST_STRING_JUMBO: OpcodeKind.STRING_CONSTANT,
    }
    for opcode in range(IGET_FIRST, IPUT_LAST + 1):
        table[opcode] = OpcodeKind.INSTANCE_FIELD
    for opcode in range(SGET_FIRST, SPUT_LAST + 1):
        table[opcode] = OpcodeKind.STATIC_FIELD
    for opcode in range(INVOKE_FIRST, INVOKE_LAST + 1):
        table[opcode] = OpcodeKind.METHOD_INVOKE
    for opcode in range(INVOKE_RANGE_FIRST, INVOKE_RANGE_LAST + 1):
        table[opcode] = OpcodeKind.METHOD_INVOKE
    return table


OPCODE_KINDS: Dict[int, OpcodeKind] = _build_table()


def classify_opcode(opcode: int) -> OpcodeKind:
    return OPCODE_KINDS.get(opcode, OpcodeKind.OTHER)
