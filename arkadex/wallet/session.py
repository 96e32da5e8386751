# -*- coding: utf-8 -*-

"""Collaborators the batch coordinator drives, and the coins it settles."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Mapping, NamedTuple, Optional, Sequence

from bitcointx.core.psbt import PartiallySignedTransaction

from arkadex.lib.tx_tree import TxTree
from arkadex.lib.vtxo_script import TapLeafScript, VtxoScript


class SignerSession(ABC):
    """MuSig2 signing session over the shared VTXO tree."""

    @abstractmethod
    async def init(self, tree: TxTree, sweep_leaf_hash: bytes, amount: int):
        pass

    @abstractmethod
    async def get_public_key(self) -> bytes:
        """33-byte compressed public key of this cosigner."""

    @abstractmethod
    async def get_nonces(self) -> Mapping[str, bytes]:
        """Public nonces keyed by tree txid."""

    @abstractmethod
    async def aggregated_nonces(self, txid: str, nonces: Mapping[str, str]) -> bool:
        """Feed the cosigners' nonces for ``txid``; True once every tree tx has all of them."""

    @abstractmethod
    async def sign(self) -> Mapping[str, bytes]:
        """Partial signatures keyed by tree txid."""


class Identity(ABC):
    @abstractmethod
    async def sign(
        self, psbt: PartiallySignedTransaction, input_indexes: Optional[Sequence[int]] = None
    ) -> PartiallySignedTransaction:
        pass


@dataclass
class ArkadeCoin:
    """A wallet input to settle: a VTXO or a boarding output."""

    txid: str
    vout: int
    value: int
    tap_tree: bytes
    forfeit_tap_leaf_script: TapLeafScript
    embedded_script: bytes

    @cached_property
    def pk_script(self) -> bytes:
        return VtxoScript.decode(self.tap_tree).pk_script


class SignedIntent(NamedTuple):
    """Intent proof already co-signed by the introspector, with its register message."""

    proof: str
    message: Dict[str, object]
