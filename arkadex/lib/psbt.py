# -*- coding: utf-8 -*-

"""PSBT helpers for the taproot and Ark specific input fields.

bitcointx parses the base BIP-174 fields only; the taproot (BIP-371) and Ark
fields end up in each input's ``unknown_fields`` list and are managed here.
"""

from typing import List, Optional

from bitcointx.core import b2lx
from bitcointx.core.psbt import PartiallySignedTransaction, PSBT_UnknownTypeData
from bitcointx.core.script import CScriptWitness

from arkadex.lib.vtxo_script import TapLeafScript

PSBT_IN_TAP_KEY_SIG = 0x13
PSBT_IN_TAP_LEAF_SCRIPT = 0x15

ARK_UNKNOWN_KEY_TYPE = 0xFF
ARKADE_SCRIPT_KEY = b"arkadescript"
VTXO_TAPROOT_TREE_KEY = b"taptree"
CONDITION_WITNESS_KEY = b"condition"


def from_base64(b64_data: str) -> PartiallySignedTransaction:
    return PartiallySignedTransaction.from_base64(b64_data)


def psbt_txid(psbt: PartiallySignedTransaction) -> str:
    return b2lx(psbt.unsigned_tx.GetTxid())


def _input(psbt, index):
    if not 0 <= index < len(psbt.inputs):
        raise IndexError(f"input {index} out of range")
    return psbt.inputs[index]


def set_unknown_field(psbt: PartiallySignedTransaction, index: int, key_type: int, key_data: bytes, value: bytes):
    """Set an input field, replacing any entry with the same key."""
    psbt_input = _input(psbt, index)
    fields = [f for f in psbt_input.unknown_fields if (f.key_type, f.key_data) != (key_type, key_data)]
    fields.append(PSBT_UnknownTypeData(key_type=key_type, key_data=key_data, value=value))
    psbt_input.unknown_fields = fields


def get_unknown_field(psbt: PartiallySignedTransaction, index: int, key_type: int, key_data: bytes) -> Optional[bytes]:
    for field in _input(psbt, index).unknown_fields:
        if field.key_type == key_type and field.key_data == key_data:
            return field.value
    return None


def set_ark_field(psbt, index, key, value):
    set_unknown_field(psbt, index, ARK_UNKNOWN_KEY_TYPE, key, value)


def get_ark_field(psbt, index, key):
    return get_unknown_field(psbt, index, ARK_UNKNOWN_KEY_TYPE, key)


def set_arkade_script(psbt: PartiallySignedTransaction, index: int, script: bytes):
    """Attach the embedded Arkade script so a verifier can recompute the key tweak."""
    set_ark_field(psbt, index, ARKADE_SCRIPT_KEY, bytes(script))


def get_arkade_script(psbt: PartiallySignedTransaction, index: int) -> Optional[bytes]:
    return get_ark_field(psbt, index, ARKADE_SCRIPT_KEY)


def set_vtxo_taproot_tree(psbt: PartiallySignedTransaction, index: int, tap_tree: bytes):
    set_ark_field(psbt, index, VTXO_TAPROOT_TREE_KEY, bytes(tap_tree))


def set_condition_witness(psbt: PartiallySignedTransaction, index: int, witness: List[bytes]):
    set_ark_field(psbt, index, CONDITION_WITNESS_KEY, CScriptWitness(witness).serialize())


def set_tap_leaf_script(psbt: PartiallySignedTransaction, index: int, leaf: TapLeafScript):
    set_unknown_field(
        psbt,
        index,
        PSBT_IN_TAP_LEAF_SCRIPT,
        leaf.control_block,
        leaf.script + bytes([leaf.leaf_version]),
    )


def find_tapleaf_scripts(psbt: PartiallySignedTransaction, index: int) -> List[TapLeafScript]:
    leaves = []
    for field in _input(psbt, index).unknown_fields:
        if field.key_type == PSBT_IN_TAP_LEAF_SCRIPT:
            leaves.append(TapLeafScript(field.key_data, field.value[:-1], field.value[-1]))
    return leaves


def set_tap_key_sig(psbt: PartiallySignedTransaction, index: int, signature: bytes):
    set_unknown_field(psbt, index, PSBT_IN_TAP_KEY_SIG, b"", signature)


def get_tap_key_sig(psbt: PartiallySignedTransaction, index: int) -> Optional[bytes]:
    return get_unknown_field(psbt, index, PSBT_IN_TAP_KEY_SIG, b"")
