# -*- coding: utf-8 -*-

"""Settlement of Arkade coins in a coordinator batch.

A round runs through four coordinator broadcasts.  ``BatchSettlementCoordinator``
has one handler per broadcast and tracks where the round is:

    IDLE --batch started--> REGISTERED --tree signing started--> TREE_SIGNING
    TREE_SIGNING --tree nonces--> NONCES_PENDING | SIGNED
    SIGNED --batch finalization--> FINALIZING --> DONE

Either of the first two handlers may instead move to SKIPPED when this wallet
has no part in the round.  SKIPPED and DONE are terminal; ``reset()`` returns
to IDLE for the next round.

A coordinator created with ``skip_vtxo_tree_signing`` has no outputs in the
VTXO tree and goes from REGISTERED directly to SIGNED.

Inputs found in the commitment transaction are boarding inputs and are signed
there directly.  Every other input is a VTXO being settled and is forfeited
against the next unused connector of the connector tree.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from bitcointx.core import b2lx
from bitcointx.core.psbt import PartiallySignedTransaction

from arkadex.client import ArkProvider, IntrospectorProvider
from arkadex.client.events import (
    BatchFailedEvent,
    BatchFinalizationEvent,
    BatchFinalizedEvent,
    BatchStartedEvent,
    TreeNoncesEvent,
    TreeSigningStartedEvent,
)
from arkadex.lib import util
from arkadex.lib.address import address_to_script
from arkadex.lib.forfeit import ForfeitInput, build_forfeit_tx
from arkadex.lib.psbt import from_base64, set_arkade_script, set_tap_leaf_script
from arkadex.lib.tapscript import CSVMultisigTapscript, RelativeTimelock
from arkadex.lib.tx_tree import TxTree
from arkadex.lib.vtxo_script import tap_leaf_hash
from arkadex.wallet.session import ArkadeCoin, Identity, SignedIntent, SignerSession


class BatchError(Exception):
    pass


class MissingDataError(BatchError):
    pass


class ConnectorsExhaustedError(BatchError):
    pass


class PhaseError(BatchError):
    pass


class Phase(Enum):
    IDLE = "idle"
    REGISTERED = "registered"
    TREE_SIGNING = "tree_signing"
    NONCES_PENDING = "nonces_pending"
    SIGNED = "signed"
    FINALIZING = "finalizing"
    DONE = "done"
    SKIPPED = "skipped"


_TRANSITIONS = {
    Phase.IDLE: (Phase.REGISTERED, Phase.SKIPPED),
    Phase.REGISTERED: (Phase.TREE_SIGNING, Phase.SKIPPED),
    Phase.TREE_SIGNING: (Phase.NONCES_PENDING, Phase.SIGNED),
    Phase.NONCES_PENDING: (Phase.SIGNED,),
    Phase.SIGNED: (Phase.FINALIZING,),
    Phase.FINALIZING: (Phase.DONE,),
}

# wallets outside the VTXO tree signing session wait for finalization right away
_SKIP_SIGNING_TRANSITIONS = {
    Phase.REGISTERED: (Phase.SIGNED,),
}


@dataclass
class BatchSession:
    """State shared by the handlers of one round.

    ``batch_id`` and ``sweep_leaf_hash`` are set once the wallet is registered.
    """

    phase: Phase = Phase.IDLE
    batch_id: Optional[str] = None
    sweep_leaf_hash: Optional[bytes] = None


def intent_id_hash(intent_id: str) -> str:
    return hashlib.sha256(intent_id.encode()).hexdigest()


def find_input_index(psbt: PartiallySignedTransaction, txid: str, vout: int) -> Optional[int]:
    """Index of the first input of ``psbt`` spending ``txid:vout``."""
    for index, txin in enumerate(psbt.unsigned_tx.vin):
        if txin.prevout.n == vout and b2lx(txin.prevout.hash) == txid:
            return index
    return None


class BatchHandler:
    """Receiver of the settlement events of one round.

    The four phase handlers are required; the notification hooks are optional.
    """

    async def on_batch_started(self, event: BatchStartedEvent) -> bool:
        raise NotImplementedError

    async def on_tree_signing_started(self, event: TreeSigningStartedEvent, vtxo_tree: TxTree) -> bool:
        raise NotImplementedError

    async def on_tree_nonces(self, event: TreeNoncesEvent) -> bool:
        raise NotImplementedError

    async def on_batch_finalization(
        self,
        event: BatchFinalizationEvent,
        vtxo_tree: Optional[TxTree] = None,
        connector_tree: Optional[TxTree] = None,
    ):
        raise NotImplementedError

    async def on_batch_finalized(self, event: BatchFinalizedEvent):
        pass

    async def on_batch_failed(self, event: BatchFailedEvent):
        pass

    def reset(self):
        pass


class BatchSettlementCoordinator(BatchHandler):
    """Settles ``inputs`` in one batch on behalf of a registered intent.

    Not safe to share between concurrent rounds; use one instance per round
    or call ``reset()`` after a round is over.
    """

    def __init__(
        self,
        intent_id: str,
        inputs: Sequence[ArkadeCoin],
        identity: Identity,
        signed_intent: SignedIntent,
        signer_session: SignerSession,
        ark_provider: ArkProvider,
        introspector: IntrospectorProvider,
        network: str = "bitcoin",
        skip_vtxo_tree_signing: bool = False,
    ):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.intent_id = intent_id
        self.inputs = list(inputs)
        self.identity = identity
        self.signed_intent = signed_intent
        self.signer_session = signer_session
        self.ark_provider = ark_provider
        self.introspector = introspector
        self.network = network
        self.skip_vtxo_tree_signing = skip_vtxo_tree_signing
        self.session = BatchSession()

    @property
    def phase(self) -> Phase:
        return self.session.phase

    def reset(self):
        if self.session.phase is not Phase.IDLE:
            self.logger.info(f"resetting from {self.session.phase.name}")
        self.session = BatchSession()

    def _expect(self, handler, *phases):
        if self.session.phase not in phases:
            raise PhaseError(f"{handler} called in phase {self.session.phase.name}")

    def _advance(self, phase):
        current = self.session.phase
        allowed = _TRANSITIONS.get(current, ())
        if self.skip_vtxo_tree_signing:
            allowed += _SKIP_SIGNING_TRANSITIONS.get(current, ())
        if phase not in allowed:
            raise PhaseError(f"invalid transition {current.name} -> {phase.name}")
        self.logger.info(f"batch {self.session.batch_id}: {current.name} -> {phase.name}")
        self.session.phase = phase

    async def on_batch_started(self, event: BatchStartedEvent) -> bool:
        """Confirm registration if our intent was admitted.  Returns True to skip the round."""
        self._expect("on_batch_started", Phase.IDLE)

        if intent_id_hash(self.intent_id) not in event.intent_id_hashes:
            self.logger.info(f"intent {self.intent_id} not admitted in batch {event.id}")
            self._advance(Phase.SKIPPED)
            return True

        await self.ark_provider.confirm_registration(self.intent_id)

        info = await self.ark_provider.get_info()
        forfeit_pubkey = bytes.fromhex(info.forfeit_pubkey)[1:]
        sweep = CSVMultisigTapscript([forfeit_pubkey], RelativeTimelock.from_batch_expiry(event.batch_expiry))

        self.session.batch_id = event.id
        self.session.sweep_leaf_hash = tap_leaf_hash(sweep.encode())
        self._advance(Phase.REGISTERED)
        if self.skip_vtxo_tree_signing:
            self._advance(Phase.SIGNED)
        return False

    async def on_tree_signing_started(self, event: TreeSigningStartedEvent, vtxo_tree: TxTree) -> bool:
        """Start the tree signing session if we are a cosigner.  Returns True to skip the round."""
        self._expect("on_tree_signing_started", Phase.REGISTERED)

        pubkey = await self.signer_session.get_public_key()
        xonly = pubkey[1:].hex()
        cosigners = {key.lower()[-64:] for key in event.cosigners_public_keys}
        if xonly not in cosigners:
            self.logger.info(f"not a tree cosigner in batch {self.session.batch_id}")
            self._advance(Phase.SKIPPED)
            return True

        commitment = from_base64(event.unsigned_commitment_tx)
        outputs = commitment.unsigned_tx.vout
        if not outputs or not outputs[0].nValue:
            raise MissingDataError("shared output not found in the unsigned commitment transaction")

        await self.signer_session.init(vtxo_tree, self.session.sweep_leaf_hash, outputs[0].nValue)
        nonces = await self.signer_session.get_nonces()
        await self.ark_provider.submit_tree_nonces(self.session.batch_id, pubkey.hex(), nonces)
        self._advance(Phase.TREE_SIGNING)
        return False

    async def on_tree_nonces(self, event: TreeNoncesEvent) -> bool:
        """Aggregate nonces; once all are in, sign and submit.  Returns True when signed."""
        self._expect("on_tree_nonces", Phase.TREE_SIGNING, Phase.NONCES_PENDING)

        has_all_nonces = await self.signer_session.aggregated_nonces(event.txid, event.nonces)
        if not has_all_nonces:
            if self.session.phase is Phase.TREE_SIGNING:
                self._advance(Phase.NONCES_PENDING)
            return False

        signatures = await self.signer_session.sign()
        pubkey = await self.signer_session.get_public_key()
        await self.ark_provider.submit_tree_signatures(self.session.batch_id, pubkey.hex(), signatures)
        self._advance(Phase.SIGNED)
        return True

    async def on_batch_finalization(
        self,
        event: BatchFinalizationEvent,
        vtxo_tree: Optional[TxTree] = None,
        connector_tree: Optional[TxTree] = None,
    ):
        """Sign boarding inputs and forfeit settled VTXOs, then hand both to the servers."""
        self._expect("on_batch_finalization", Phase.SIGNED)
        self._advance(Phase.FINALIZING)

        if not event.commitment_tx:
            raise MissingDataError("commitment transaction missing from finalization event")

        info = await self.ark_provider.get_info()
        forfeit_script = address_to_script(info.forfeit_address, self.network)

        commitment = from_base64(event.commitment_tx)
        connectors = connector_tree.leaves() if connector_tree is not None else []
        next_connector = 0
        signed_forfeits: List[str] = []
        has_boarding_inputs = False

        for coin in self.inputs:
            index = find_input_index(commitment, coin.txid, coin.vout)
            if index is not None:
                self.logger.debug(f"boarding input {coin.txid}:{coin.vout} at commitment index {index}")
                set_tap_leaf_script(commitment, index, coin.forfeit_tap_leaf_script)
                set_arkade_script(commitment, index, coin.embedded_script)
                commitment = await self.identity.sign(commitment, [index])
                has_boarding_inputs = True
                continue

            if next_connector >= len(connectors):
                raise ConnectorsExhaustedError("not enough connectors received")
            connector = connectors[next_connector]
            next_connector += 1

            forfeit = self._build_forfeit(coin, connector, forfeit_script)
            forfeit = await self.identity.sign(forfeit, [0])
            signed_forfeits.append(forfeit.to_base64())

        connector_nodes = connector_tree.serialize() if connector_tree is not None else None
        commitment_b64 = commitment.to_base64() if has_boarding_inputs else event.commitment_tx

        result = await self.introspector.submit_finalization(
            self.signed_intent.proof,
            self.signed_intent.message,
            signed_forfeits,
            connector_nodes,
            commitment_b64,
        )

        # an empty co-signed commitment counts as none returned
        signed_commitment_tx = result.signed_commitment_tx or (commitment_b64 if has_boarding_inputs else None)
        await self.ark_provider.submit_signed_forfeit_txs(result.signed_forfeits, signed_commitment_tx)
        self._advance(Phase.DONE)

    def _build_forfeit(self, coin: ArkadeCoin, connector: TxTree, forfeit_script: bytes) -> PartiallySignedTransaction:
        outputs = connector.root.unsigned_tx.vout
        if not outputs or not outputs[0].nValue or not outputs[0].scriptPubKey:
            raise MissingDataError(f"connector {connector.txid} has no output to spend")
        connector_output = outputs[0]

        forfeit = build_forfeit_tx(
            [
                ForfeitInput(coin.txid, coin.vout, coin.value, coin.pk_script, coin.forfeit_tap_leaf_script),
                ForfeitInput(connector.txid, 0, connector_output.nValue, bytes(connector_output.scriptPubKey)),
            ],
            forfeit_script,
        )
        set_arkade_script(forfeit, 0, coin.embedded_script)
        return forfeit
