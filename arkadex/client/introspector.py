# -*- coding: utf-8 -*-

"""REST client for the introspector.

The introspector executes the embedded Arkade scripts of a transaction and,
when they pass, co-signs with the key those scripts tweak.
"""

import json
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Sequence

from arkadex.client.rest import ProviderError, RestClient
from arkadex.lib.tx_tree import TxTreeNode


class IntrospectorInfo(NamedTuple):
    version: str
    signer_pubkey: str


class SignedArkTx(NamedTuple):
    signed_ark_tx: str
    signed_checkpoint_txs: List[str]


@dataclass
class FinalizationResult:
    signed_forfeits: List[str]
    signed_commitment_tx: Optional[str] = None


def _intent_json(proof: str, message: dict) -> dict:
    return {"proof": proof, "message": json.dumps(message)}


def _is_str_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


class IntrospectorProvider(RestClient):
    async def get_info(self) -> IntrospectorInfo:
        data = await self.get_json("/v1/info", "get introspector info")
        signer_pubkey = data.get("signerPubkey")
        if not isinstance(signer_pubkey, str) or not signer_pubkey:
            raise ProviderError("invalid introspector info response: missing signerPubkey")
        return IntrospectorInfo(data.get("version") or "", signer_pubkey)

    async def submit_tx(self, ark_tx: str, checkpoint_txs: Sequence[str]) -> SignedArkTx:
        body = {"arkTx": ark_tx, "checkpointTxs": list(checkpoint_txs)}
        data = await self.post_json("/v1/tx", body, "submit tx to introspector")
        signed_ark_tx = data.get("signedArkTx")
        if not isinstance(signed_ark_tx, str) or not signed_ark_tx:
            raise ProviderError("invalid introspector submit_tx response: missing signedArkTx")
        if not _is_str_list(data.get("signedCheckpointTxs")):
            raise ProviderError("invalid introspector submit_tx response: missing signedCheckpointTxs")
        return SignedArkTx(signed_ark_tx, data["signedCheckpointTxs"])

    async def submit_intent(self, proof: str, message: dict) -> str:
        """Have the introspector co-sign an intent proof; returns the signed proof."""
        body = {"intent": _intent_json(proof, message)}
        data = await self.post_json("/v1/intent", body, "submit intent to introspector")
        signed_proof = data.get("signedProof")
        if not isinstance(signed_proof, str) or not signed_proof:
            raise ProviderError("invalid introspector submit_intent response: missing signedProof")
        return signed_proof

    async def submit_finalization(
        self,
        proof: str,
        message: dict,
        forfeits: Sequence[str],
        connector_tree: Optional[Sequence[TxTreeNode]],
        commitment_tx: str,
    ) -> FinalizationResult:
        # the proof was already co-signed through submit_intent
        body = {
            "signedIntent": _intent_json(proof, message),
            "forfeits": list(forfeits),
            "connectorTree": None if connector_tree is None else [node.to_json() for node in connector_tree],
            "commitmentTx": commitment_tx,
        }
        data = await self.post_json("/v1/finalization", body, "submit finalization to introspector")
        if not _is_str_list(data.get("signedForfeits")):
            raise ProviderError("invalid introspector submit_finalization response: missing signedForfeits")
        signed_commitment_tx = data.get("signedCommitmentTx")
        if signed_commitment_tx is not None and not isinstance(signed_commitment_tx, str):
            raise ProviderError("invalid introspector submit_finalization response: invalid signedCommitmentTx")
        return FinalizationResult(data["signedForfeits"], signed_commitment_tx)
