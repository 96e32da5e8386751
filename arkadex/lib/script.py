# -*- coding: utf-8 -*-

"""Script encoding and decoding aware of the Arkade extension opcodes.

A script is handled as a list of operations, each one of:

* ``str``   an opcode name from the registry (``'DUP'``, ``'ADD64'``)
* ``int``   0..16 for the small integer opcodes, anything else is pushed
            as a minimally encoded script number
* ``bytes`` a data push

The standard bitcointx parser would read bytes in the extension range as
unknown opcodes, so decoding is done here against the merged registry.
"""

import re
import struct
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from bitcointx.core._bignum import bn2vch
from bitcointx.core.script import (
    OP_0,
    OP_1,
    OP_16,
    OP_PUSHDATA1,
    OP_PUSHDATA2,
    OP_PUSHDATA4,
    CScriptOp,
)

from arkadex.lib.opcodes import name_to_value, value_to_name

ScriptOp = Union[str, int, bytes]


class ScriptError(ValueError):
    pass


class ScriptDecodeError(ScriptError):
    pass


class UnknownOpcodeError(ScriptDecodeError):
    pass


class TruncatedPushDataError(ScriptDecodeError):
    pass


class InvalidASMTokenError(ScriptDecodeError):
    pass


_SMALL_INT_TOKEN = re.compile(r"OP_([0-9]+)")
_HEX_TOKEN = re.compile(r"[0-9a-fA-F]+")


def iter_script_ops(data: bytes) -> Iterator[Tuple[int, Optional[bytes], int]]:
    """Yield ``(opcode, payload, offset)`` for each instruction.

    ``payload`` is None for anything that is not a data push.
    """
    i = 0
    while i < len(data):
        payload = None
        opcode = data[i]
        i += 1
        if OP_0 < opcode <= OP_PUSHDATA4:
            size = opcode
            try:
                if opcode == OP_PUSHDATA1:
                    size = data[i]
                    i += 1
                elif opcode == OP_PUSHDATA2:
                    (size,) = struct.unpack_from("<H", data, i)
                    i += 2
                elif opcode == OP_PUSHDATA4:
                    (size,) = struct.unpack_from("<I", data, i)
                    i += 4
            except (IndexError, struct.error):
                raise TruncatedPushDataError(f"missing push length at offset {i}")
            if i + size > len(data):
                raise TruncatedPushDataError(f"push of {size} bytes at offset {i} runs past end of script")
            payload = data[i : i + size]
            i += size

        yield opcode, payload, i


def _op_from_value(value: int) -> ScriptOp:
    if value == OP_0:
        return 0
    if OP_1 <= value <= OP_16:
        return value - OP_1 + 1
    name = value_to_name(value)
    if name is None:
        raise UnknownOpcodeError(f"unknown opcode 0x{value:02x}")
    return name


def encode(ops: Sequence[ScriptOp]) -> bytes:
    """Serialize ``ops`` to script bytes.

    An empty data push is written as ``OP_0`` and so decodes back as the
    integer ``0``; it is the one operation that does not round-trip.
    """
    out = bytearray()
    for op in ops:
        if isinstance(op, str):
            value = name_to_value(op)
            if value is None:
                raise UnknownOpcodeError(f"unknown opcode {op!r}")
            out.append(value)
        elif isinstance(op, int):
            if 0 <= op <= 16:
                out.append(CScriptOp.encode_op_n(op))
            else:
                out += CScriptOp.encode_op_pushdata(bn2vch(op))
        elif isinstance(op, (bytes, bytearray)):
            out += CScriptOp.encode_op_pushdata(bytes(op))
        else:
            raise TypeError(f"type {type(op).__name__} cannot be represented in a script")
    return bytes(out)


def decode(data: bytes) -> List[ScriptOp]:
    ops: List[ScriptOp] = []
    for opcode, payload, _ in iter_script_ops(data):
        if payload is not None:
            ops.append(payload)
        else:
            ops.append(_op_from_value(opcode))
    return ops


def to_asm(ops: Sequence[ScriptOp]) -> str:
    parts = []
    for op in ops:
        if isinstance(op, str):
            parts.append(op if op.startswith("OP_") else f"OP_{op}")
        elif isinstance(op, int):
            parts.append(f"OP_{op}" if 0 <= op <= 16 else str(op))
        else:
            parts.append(bytes(op).hex())
    return " ".join(parts)


def from_asm(text: str) -> List[ScriptOp]:
    ops: List[ScriptOp] = []
    for token in text.split():
        if token in ("OP_0", "OP_FALSE"):
            ops.append(0)
            continue

        match = _SMALL_INT_TOKEN.fullmatch(token)
        if match and 1 <= int(match.group(1)) <= 16:
            ops.append(int(match.group(1)))
            continue

        key = token[3:] if token.startswith("OP_") else token
        value = name_to_value(key)
        if value is not None:
            ops.append(_op_from_value(value))
            continue

        if _HEX_TOKEN.fullmatch(token) and len(token) % 2 == 0:
            ops.append(bytes.fromhex(token))
            continue

        raise InvalidASMTokenError(f"invalid ASM token: {token}")
    return ops


def asm_to_bytes(text: str) -> bytes:
    return encode(from_asm(text))


def bytes_to_asm(data: bytes) -> str:
    return to_asm(decode(data))
