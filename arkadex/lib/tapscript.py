# -*- coding: utf-8 -*-

"""Tapscript templates used by VTXO leaves.

Every template ends in a multisig closure over ``pubkeys`` (32-byte x-only
keys) and may prefix it with a timelock and/or a condition script:

    Multisig                <pk_1> CHECKSIGVERIFY ... <pk_n> CHECKSIG
    CSVMultisig             <seq> CHECKSEQUENCEVERIFY DROP <multisig>
    ConditionCSVMultisig    <condition> VERIFY <seq> CHECKSEQUENCEVERIFY DROP <multisig>
    ConditionMultisig       <condition> VERIFY <multisig>
    CLTVMultisig            <locktime> CHECKLOCKTIMEVERIFY DROP <multisig>
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, List, Sequence, Union

from bitcointx.core._bignum import vch2bn

from arkadex.lib import script as arkscript

SEQUENCE_LOCKTIME_TYPE_FLAG = 1 << 22
SEQUENCE_LOCKTIME_MASK = 0x0000FFFF
SEQUENCE_LOCKTIME_GRANULARITY = 9
SECONDS_MOD = 1 << SEQUENCE_LOCKTIME_GRANULARITY
SECONDS_MAX = SEQUENCE_LOCKTIME_MASK << SEQUENCE_LOCKTIME_GRANULARITY


class TapscriptDecodeError(ValueError):
    pass


class UnsupportedTemplateError(ValueError):
    pass


class MultisigType(Enum):
    CHECKSIG = 0
    CHECKSIGADD = 1


@dataclass(frozen=True)
class RelativeTimelock:
    type: str
    value: int

    def __post_init__(self):
        if self.type not in ("blocks", "seconds"):
            raise ValueError(f"invalid timelock type {self.type!r}")

    @classmethod
    def from_batch_expiry(cls, expiry):
        """Values below 512 count blocks, anything else is seconds."""
        return cls("blocks" if expiry < 512 else "seconds", expiry)


def bip68_encode(timelock: RelativeTimelock) -> int:
    if timelock.type == "blocks":
        if not 0 <= timelock.value <= SEQUENCE_LOCKTIME_MASK:
            raise ValueError(f"block timelock {timelock.value} out of range")
        return timelock.value
    if not 0 <= timelock.value <= SECONDS_MAX:
        raise ValueError(f"seconds timelock {timelock.value} out of range")
    if timelock.value % SECONDS_MOD:
        raise ValueError(f"seconds timelock {timelock.value} is not a multiple of {SECONDS_MOD}")
    return SEQUENCE_LOCKTIME_TYPE_FLAG | (timelock.value >> SEQUENCE_LOCKTIME_GRANULARITY)


def bip68_decode(sequence: int) -> RelativeTimelock:
    if sequence & SEQUENCE_LOCKTIME_TYPE_FLAG:
        return RelativeTimelock("seconds", (sequence & SEQUENCE_LOCKTIME_MASK) << SEQUENCE_LOCKTIME_GRANULARITY)
    return RelativeTimelock("blocks", sequence & SEQUENCE_LOCKTIME_MASK)


def _script_num(op) -> int:
    if isinstance(op, int):
        return op
    if isinstance(op, bytes):
        return vch2bn(op)
    raise TapscriptDecodeError(f"expected a number, got {op!r}")


def _multisig_ops(pubkeys: Sequence[bytes], kind: MultisigType) -> list:
    if not pubkeys:
        raise ValueError("multisig needs at least one public key")
    for pk in pubkeys:
        if len(pk) != 32:
            raise ValueError(f"invalid x-only public key length {len(pk)}")

    ops = []
    if kind == MultisigType.CHECKSIGADD:
        for i, pk in enumerate(pubkeys):
            ops += [pk, "CHECKSIG" if i == 0 else "CHECKSIGADD"]
        ops += [len(pubkeys), "NUMEQUAL"]
        return ops

    for pk in pubkeys[:-1]:
        ops += [pk, "CHECKSIGVERIFY"]
    ops += [pubkeys[-1], "CHECKSIG"]
    return ops


def _decode_multisig_ops(ops: list):
    """Return ``(pubkeys, kind)`` for a multisig closure, raising if ``ops`` is not one."""
    if len(ops) >= 4 and ops[-1] == "NUMEQUAL" and "CHECKSIGADD" in ops:
        pairs, count = ops[:-2], ops[-2]
        if len(pairs) % 2 == 0:
            pubkeys = pairs[0::2]
            checks = pairs[1::2]
            expected = ["CHECKSIG"] + ["CHECKSIGADD"] * (len(checks) - 1)
            if checks == expected and all(isinstance(pk, bytes) and len(pk) == 32 for pk in pubkeys):
                if _script_num(count) == len(pubkeys):
                    return list(pubkeys), MultisigType.CHECKSIGADD
        raise TapscriptDecodeError("malformed CHECKSIGADD multisig")

    if not ops or len(ops) % 2:
        raise TapscriptDecodeError("malformed multisig")
    pubkeys = ops[0::2]
    checks = ops[1::2]
    expected = ["CHECKSIGVERIFY"] * (len(checks) - 1) + ["CHECKSIG"]
    if checks != expected or not all(isinstance(pk, bytes) and len(pk) == 32 for pk in pubkeys):
        raise TapscriptDecodeError("malformed multisig")
    return list(pubkeys), MultisigType.CHECKSIG


@dataclass(frozen=True)
class MultisigTapscript:
    name: ClassVar[str] = "multisig"

    pubkeys: List[bytes]
    kind: MultisigType = MultisigType.CHECKSIG

    def encode(self) -> bytes:
        return arkscript.encode(_multisig_ops(self.pubkeys, self.kind))

    @classmethod
    def decode(cls, script: bytes) -> "MultisigTapscript":
        pubkeys, kind = _decode_multisig_ops(arkscript.decode(script))
        return cls(pubkeys, kind)


@dataclass(frozen=True)
class CSVMultisigTapscript:
    name: ClassVar[str] = "csv-multisig"

    pubkeys: List[bytes]
    timelock: RelativeTimelock

    def encode(self) -> bytes:
        sequence = bip68_encode(self.timelock)
        ops = [sequence, "CHECKSEQUENCEVERIFY", "DROP"]
        return arkscript.encode(ops + _multisig_ops(self.pubkeys, MultisigType.CHECKSIG))

    @classmethod
    def decode(cls, script: bytes) -> "CSVMultisigTapscript":
        ops = arkscript.decode(script)
        if len(ops) < 5 or ops[1:3] != ["CHECKSEQUENCEVERIFY", "DROP"]:
            raise TapscriptDecodeError("not a CSV multisig script")
        pubkeys, _ = _decode_multisig_ops(ops[3:])
        return cls(pubkeys, bip68_decode(_script_num(ops[0])))


@dataclass(frozen=True)
class ConditionCSVMultisigTapscript:
    name: ClassVar[str] = "condition-csv-multisig"

    pubkeys: List[bytes]
    timelock: RelativeTimelock
    condition: bytes = field(default=b"")

    def encode(self) -> bytes:
        ops = arkscript.decode(self.condition)
        ops += ["VERIFY", bip68_encode(self.timelock), "CHECKSEQUENCEVERIFY", "DROP"]
        return arkscript.encode(ops + _multisig_ops(self.pubkeys, MultisigType.CHECKSIG))

    @classmethod
    def decode(cls, script: bytes) -> "ConditionCSVMultisigTapscript":
        ops = arkscript.decode(script)
        for i, op in enumerate(ops):
            if op != "VERIFY" or ops[i + 2 : i + 4] != ["CHECKSEQUENCEVERIFY", "DROP"]:
                continue
            try:
                pubkeys, _ = _decode_multisig_ops(ops[i + 4 :])
                timelock = bip68_decode(_script_num(ops[i + 1]))
            except TapscriptDecodeError:
                continue
            return cls(pubkeys, timelock, arkscript.encode(ops[:i]))
        raise TapscriptDecodeError("not a condition CSV multisig script")


@dataclass(frozen=True)
class ConditionMultisigTapscript:
    name: ClassVar[str] = "condition-multisig"

    pubkeys: List[bytes]
    condition: bytes = field(default=b"")
    kind: MultisigType = MultisigType.CHECKSIG

    def encode(self) -> bytes:
        ops = arkscript.decode(self.condition) + ["VERIFY"]
        return arkscript.encode(ops + _multisig_ops(self.pubkeys, self.kind))

    @classmethod
    def decode(cls, script: bytes) -> "ConditionMultisigTapscript":
        ops = arkscript.decode(script)
        for i, op in enumerate(ops):
            if op != "VERIFY":
                continue
            try:
                pubkeys, kind = _decode_multisig_ops(ops[i + 1 :])
            except TapscriptDecodeError:
                continue
            return cls(pubkeys, arkscript.encode(ops[:i]), kind)
        raise TapscriptDecodeError("not a condition multisig script")


@dataclass(frozen=True)
class CLTVMultisigTapscript:
    name: ClassVar[str] = "cltv-multisig"

    pubkeys: List[bytes]
    absolute_timelock: int
    kind: MultisigType = MultisigType.CHECKSIG

    def encode(self) -> bytes:
        ops = [self.absolute_timelock, "CHECKLOCKTIMEVERIFY", "DROP"]
        return arkscript.encode(ops + _multisig_ops(self.pubkeys, self.kind))

    @classmethod
    def decode(cls, script: bytes) -> "CLTVMultisigTapscript":
        ops = arkscript.decode(script)
        if len(ops) < 5 or ops[1:3] != ["CHECKLOCKTIMEVERIFY", "DROP"]:
            raise TapscriptDecodeError("not a CLTV multisig script")
        pubkeys, kind = _decode_multisig_ops(ops[3:])
        return cls(pubkeys, _script_num(ops[0]), kind)


TapscriptTemplate = Union[
    MultisigTapscript,
    CSVMultisigTapscript,
    ConditionCSVMultisigTapscript,
    ConditionMultisigTapscript,
    CLTVMultisigTapscript,
]

# most specific first: a condition script may itself look like a timelock
_DECODE_ORDER = (
    MultisigTapscript,
    CSVMultisigTapscript,
    CLTVMultisigTapscript,
    ConditionCSVMultisigTapscript,
    ConditionMultisigTapscript,
)


def encode_tapscript(template: TapscriptTemplate) -> bytes:
    if isinstance(template, MultisigTapscript):
        return template.encode()
    elif isinstance(template, CSVMultisigTapscript):
        return template.encode()
    elif isinstance(template, ConditionCSVMultisigTapscript):
        return template.encode()
    elif isinstance(template, ConditionMultisigTapscript):
        return template.encode()
    elif isinstance(template, CLTVMultisigTapscript):
        return template.encode()
    raise UnsupportedTemplateError(f"unsupported tapscript type: {type(template).__name__}")


def with_pubkey(template: TapscriptTemplate, pubkey: bytes) -> TapscriptTemplate:
    """Return a copy of ``template`` with ``pubkey`` appended to its signers."""
    if not isinstance(template, _DECODE_ORDER):
        raise UnsupportedTemplateError(f"unsupported tapscript type: {type(template).__name__}")
    return replace(template, pubkeys=[*template.pubkeys, pubkey])


def decode_tapscript(script: bytes) -> TapscriptTemplate:
    for template_cls in _DECODE_ORDER:
        try:
            return template_cls.decode(script)
        except (TapscriptDecodeError, arkscript.ScriptError):
            continue
    raise UnsupportedTemplateError(f"unknown tapscript: {script.hex()}")
