# -*- coding: utf-8 -*-

from typing import NamedTuple, Optional, Sequence

from bitcointx.core import COutPoint, CMutableTransaction, CMutableTxIn, CMutableTxOut, CTxOut, lx
from bitcointx.core.psbt import PartiallySignedTransaction
from bitcointx.core.script import CScript

from arkadex.lib.psbt import set_tap_leaf_script
from arkadex.lib.vtxo_script import TapLeafScript

FORFEIT_TX_VERSION = 3
ANCHOR_VALUE = 0
# pay-to-anchor: OP_1 <0x4e73>
ANCHOR_PKSCRIPT = bytes.fromhex("51024e73")

MAX_SEQUENCE = 0xFFFFFFFF


class ForfeitInput(NamedTuple):
    txid: str
    vout: int
    amount: int
    script: bytes
    tap_leaf_script: Optional[TapLeafScript] = None


def build_forfeit_tx(
    inputs: Sequence[ForfeitInput], forfeit_script: bytes, locktime: int = 0
) -> PartiallySignedTransaction:
    """Spend ``inputs`` in full to ``forfeit_script`` plus a zero value anchor.

    The caller orders the inputs, VTXO first and connector second.
    """
    if not inputs:
        raise ValueError("forfeit transaction needs inputs")

    sequence = MAX_SEQUENCE - 1 if locktime else MAX_SEQUENCE
    amount = sum(inp.amount for inp in inputs)
    tx = CMutableTransaction(
        vin=[CMutableTxIn(COutPoint(lx(inp.txid), inp.vout), nSequence=sequence) for inp in inputs],
        vout=[
            CMutableTxOut(amount, CScript(forfeit_script)),
            CMutableTxOut(ANCHOR_VALUE, CScript(ANCHOR_PKSCRIPT)),
        ],
        nLockTime=locktime,
        nVersion=FORFEIT_TX_VERSION,
    )

    psbt = PartiallySignedTransaction(unsigned_tx=tx)
    for index, inp in enumerate(inputs):
        psbt.set_utxo(CTxOut(inp.amount, CScript(inp.script)), index, force_witness_utxo=True)
        if inp.tap_leaf_script is not None:
            set_tap_leaf_script(psbt, index, inp.tap_leaf_script)
    return psbt
