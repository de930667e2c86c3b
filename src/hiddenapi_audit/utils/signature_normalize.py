from __future__ import annotations

import re
from typing import Optional

DEX_MEMBER_RE = re.compile(r"^(L[^;]+;)->([^(:]+)(.*)$")


def to_internal_name(name: str) -> str:
    """Convert a Java level class name (``a.b.C``) into descriptor form (``La/b/C;``).

    Inner classes keep their ``$`` separator, which is what both the class
    literals and the policy lists use.
    """
    return "L" + name.replace(".", "/") + ";"


def to_descriptor_prefix(prefix: str) -> str:
    """Accept either ``com.example`` or ``Lcom/example`` style class prefixes."""
    if prefix.startswith("L") and "." not in prefix:
        return prefix
    return "L" + prefix.replace(".", "/")


def normalize_proto(desc: str) -> str:
    # androguard separates parameter types with spaces.
    return desc.replace(" ", "")


def dex_method_name(class_desc: str, method_name: str, proto_desc: str) -> str:
    return f"{class_desc}->{method_name}{normalize_proto(proto_desc)}"


def dex_field_name(class_desc: str, field_name: str, type_desc: str) -> str:
    return f"{class_desc}->{field_name}:{type_desc.strip()}"


def class_of_member(sig: str) -> Optional[str]:
    match = DEX_MEMBER_RE.match(sig)
    if match:
        return match.group(1)
    return None


def strip_member_type(sig: str) -> Optional[str]:
    """Return ``Lc;->name`` for a method or field signature, None for anything else."""
    match = DEX_MEMBER_RE.match(sig)
    if not match or not match.group(3):
        return None
    return f"{match.group(1)}->{match.group(2)}"
