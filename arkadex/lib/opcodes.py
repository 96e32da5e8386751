# -*- coding: utf-8 -*-

"""Opcode registry: the Bitcoin base table merged with the Arkade extension opcodes.

Names are stored without the ``OP_`` prefix (``DUP``, ``ADD64``) except for the
numeric pushes, which keep it (``OP_0``, ``OP_16``) so that every name is a
valid identifier-like token.  Single byte data pushes (0x01-0x4b) are not
stored; they are synthesized on lookup as ``DATA_<n>``.
"""

import re
from enum import Enum
from typing import Dict, Iterator, NamedTuple, Optional

from bitcointx.core.script import OP_CHECKSIGADD, OP_PUSHDATA1, OPCODE_NAMES, OPCODES_BY_NAME


class OpcodeRange(Enum):
    BASE = "base"
    EXTENSION = "extension"


class Opcode(NamedTuple):
    name: str
    value: int
    range: OpcodeRange


EXTENSION_MIN = 0xC4
EXTENSION_MAX = 0xF2

ARKADE_OPCODES: Dict[str, int] = {
    # streaming sha256
    "SHA256INITIALIZE": 0xC4,
    "SHA256UPDATE": 0xC5,
    "SHA256FINALIZE": 0xC6,
    # input introspection
    "INSPECTINPUTOUTPOINT": 0xC7,
    "INSPECTINPUTVALUE": 0xC9,
    "INSPECTINPUTSCRIPTPUBKEY": 0xCA,
    "INSPECTINPUTSEQUENCE": 0xCB,
    "CHECKSIGFROMSTACK": 0xCC,
    "PUSHCURRENTINPUTINDEX": 0xCD,
    # output introspection
    "INSPECTOUTPUTVALUE": 0xCF,
    "INSPECTOUTPUTSCRIPTPUBKEY": 0xD1,
    # transaction introspection
    "INSPECTVERSION": 0xD2,
    "INSPECTLOCKTIME": 0xD3,
    "INSPECTNUMINPUTS": 0xD4,
    "INSPECTNUMOUTPUTS": 0xD5,
    "TXWEIGHT": 0xD6,
    # 64-bit arithmetic
    "ADD64": 0xD7,
    "SUB64": 0xD8,
    "MUL64": 0xD9,
    "DIV64": 0xDA,
    "NEG64": 0xDB,
    "LESSTHAN64": 0xDC,
    "LESSTHANOREQUAL64": 0xDD,
    "GREATERTHAN64": 0xDE,
    "GREATERTHANOREQUAL64": 0xDF,
    # conversions
    "SCRIPTNUMTOLE64": 0xE0,
    "LE64TOSCRIPTNUM": 0xE1,
    "LE32TOLE64": 0xE2,
    # crypto
    "ECMULSCALARVERIFY": 0xE3,
    "TWEAKVERIFY": 0xE4,
    # asset groups
    "INSPECTNUMASSETGROUPS": 0xE5,
    "INSPECTASSETGROUPASSETID": 0xE6,
    "INSPECTASSETGROUPCTRL": 0xE7,
    "FINDASSETGROUPBYASSETID": 0xE8,
    "INSPECTASSETGROUPMETADATAHASH": 0xE9,
    "INSPECTASSETGROUPNUM": 0xEA,
    "INSPECTASSETGROUP": 0xEB,
    "INSPECTASSETGROUPSUM": 0xEC,
    "INSPECTOUTASSETCOUNT": 0xED,
    "INSPECTOUTASSETAT": 0xEE,
    "INSPECTOUTASSETLOOKUP": 0xEF,
    "INSPECTINASSETCOUNT": 0xF0,
    "INSPECTINASSETAT": 0xF1,
    "INSPECTINASSETLOOKUP": 0xF2,
}

# bitcointx keeps its template-matching placeholders in the opcode table
_TEMPLATE_PLACEHOLDERS = range(0xFA, 0xFF)

_DATA_RE = re.compile(r"DATA_([1-9][0-9]*)")


def _short_name(name: str) -> str:
    short = name[3:] if name.startswith("OP_") else name
    if short.isdigit():
        return name
    return short


def _build_tables():
    value_to_name = {}
    for op, name in OPCODE_NAMES.items():
        if int(op) in _TEMPLATE_PLACEHOLDERS:
            continue
        value_to_name[int(op)] = _short_name(name)
    value_to_name[int(OP_CHECKSIGADD)] = "CHECKSIGADD"

    for name, value in ARKADE_OPCODES.items():
        if value in value_to_name:
            raise RuntimeError(f"extension opcode {name} collides with {value_to_name[value]}")
        value_to_name[value] = name

    name_to_value = {name: value for value, name in value_to_name.items()}

    aliases = {}
    for name, op in OPCODES_BY_NAME.items():
        short = _short_name(name)
        if int(op) in _TEMPLATE_PLACEHOLDERS or short in name_to_value:
            continue
        aliases[short] = int(op)
    return value_to_name, name_to_value, aliases


_VALUE_TO_NAME, _NAME_TO_VALUE, _ALIASES = _build_tables()


def is_extension(value: int) -> bool:
    return EXTENSION_MIN <= value <= EXTENSION_MAX


def name_to_value(name: str) -> Optional[int]:
    """Return the byte value of an opcode name, or None if it is unknown.

    The ``OP_`` prefix is optional, and the usual aliases (``FALSE``, ``TRUE``,
    ``NOP2``, ``NOP3``) resolve to their canonical opcode.
    """
    key = _short_name(name)
    value = _NAME_TO_VALUE.get(key)
    if value is None:
        value = _ALIASES.get(key)
    if value is not None:
        return value

    match = _DATA_RE.fullmatch(key)
    if match:
        size = int(match.group(1))
        if size < OP_PUSHDATA1:
            return size
    return None


def value_to_name(value: int) -> Optional[str]:
    """Return the canonical name of an opcode byte, or None if it is unknown."""
    if 0 < value < OP_PUSHDATA1:
        return f"DATA_{value}"
    return _VALUE_TO_NAME.get(value)


def iter_opcodes() -> Iterator[Opcode]:
    """Yield every stored opcode in byte order."""
    for value in sorted(_VALUE_TO_NAME):
        kind = OpcodeRange.EXTENSION if is_extension(value) else OpcodeRange.BASE
        yield Opcode(_VALUE_TO_NAME[value], value, kind)
