# -*- coding: utf-8 -*-

"""Drive a ``BatchHandler`` from the coordinator's settlement event stream."""

from enum import IntEnum
from typing import AsyncIterable, List, Optional

from arkadex.client.events import (
    BatchFailedEvent,
    BatchFinalizationEvent,
    BatchFinalizedEvent,
    BatchStartedEvent,
    SettlementEvent,
    TreeNoncesEvent,
    TreeSignatureEvent,
    TreeSigningStartedEvent,
    TreeTxEvent,
)
from arkadex.lib import util
from arkadex.lib.psbt import set_tap_key_sig
from arkadex.lib.tx_tree import TxTree, TxTreeNode
from arkadex.wallet.batch import BatchHandler

# batch index of the shared VTXO tree; any other index is the connector tree
VTXO_TREE_BATCH_INDEX = 0


class BatchFailedError(Exception):
    pass


class Step(IntEnum):
    START = 0
    BATCH_STARTED = 1
    TREE_SIGNING_STARTED = 2
    TREE_NONCES_AGGREGATED = 3
    BATCH_FINALIZATION = 4


class BatchJoiner:
    """Feeds settlement events to a handler until its round is finalized.

    With ``skip_vtxo_tree_signing`` the wallet takes no part in the VTXO tree
    signing session: after a batch starts the driver goes straight to waiting
    for finalization and ignores tree signing, nonce and signature events.

    A ``BatchFailed`` event for the joined batch always raises
    ``BatchFailedError`` once ``on_batch_failed`` has run; the driver does not
    keep listening for a later round.  Call ``join`` again to retry.
    """

    def __init__(self, handler: BatchHandler, skip_vtxo_tree_signing: bool = False):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.handler = handler
        self.skip_vtxo_tree_signing = skip_vtxo_tree_signing
        self._restart()

    def _restart(self):
        self.step = Step.START
        self.batch_id: Optional[str] = None
        self.vtxo_chunks: List[TxTreeNode] = []
        self.connector_chunks: List[TxTreeNode] = []
        self.vtxo_tree: Optional[TxTree] = None
        self.connector_tree: Optional[TxTree] = None

    async def join(self, events: AsyncIterable[SettlementEvent]) -> str:
        """Returns the commitment txid of the finalized batch."""
        async for event in events:
            commitment_txid = await self.process(event)
            if commitment_txid is not None:
                return commitment_txid
        raise BatchFailedError("event stream closed")

    async def process(self, event: SettlementEvent) -> Optional[str]:
        if isinstance(event, BatchStartedEvent):
            await self._batch_started(event)
        elif isinstance(event, TreeTxEvent):
            self._tree_tx(event)
        elif isinstance(event, TreeSignatureEvent):
            self._tree_signature(event)
        elif isinstance(event, TreeSigningStartedEvent):
            await self._tree_signing_started(event)
        elif isinstance(event, TreeNoncesEvent):
            await self._tree_nonces(event)
        elif isinstance(event, BatchFinalizationEvent):
            await self._batch_finalization(event)
        elif isinstance(event, BatchFinalizedEvent):
            return await self._batch_finalized(event)
        elif isinstance(event, BatchFailedEvent):
            await self._batch_failed(event)
        return None

    def _in_batch(self, event) -> bool:
        return self.step > Step.START and event.id == self.batch_id

    async def _batch_started(self, event):
        if self.step is not Step.START:
            self.logger.info(f"batch {event.id} started, abandoning batch {self.batch_id}")
        self._restart()
        self.handler.reset()
        if await self.handler.on_batch_started(event):
            return
        self.batch_id = event.id
        self.step = Step.BATCH_STARTED
        if self.skip_vtxo_tree_signing:
            self.step = Step.TREE_NONCES_AGGREGATED

    def _tree_tx(self, event):
        if not self._in_batch(event) or self.step > Step.TREE_NONCES_AGGREGATED:
            return
        if event.batch_index == VTXO_TREE_BATCH_INDEX:
            self.vtxo_chunks.append(event.chunk)
        else:
            self.connector_chunks.append(event.chunk)

    def _tree_signature(self, event):
        if self.skip_vtxo_tree_signing:
            return
        if not self._in_batch(event) or event.batch_index != VTXO_TREE_BATCH_INDEX:
            return
        if self.vtxo_tree is None:
            raise BatchFailedError("tree signature received before the vtxo tree")
        signature = bytes.fromhex(event.signature)
        self.vtxo_tree.update(event.txid, lambda psbt: set_tap_key_sig(psbt, 0, signature))

    async def _tree_signing_started(self, event):
        if not self._in_batch(event) or self.step is not Step.BATCH_STARTED:
            return
        self.vtxo_tree = TxTree.create(self.vtxo_chunks)
        self.vtxo_tree.validate()
        if await self.handler.on_tree_signing_started(event, self.vtxo_tree):
            # not a cosigner; wait for the next round
            self._restart()
            return
        self.step = Step.TREE_SIGNING_STARTED

    async def _tree_nonces(self, event):
        if not self._in_batch(event) or self.step is not Step.TREE_SIGNING_STARTED:
            return
        if await self.handler.on_tree_nonces(event):
            self.step = Step.TREE_NONCES_AGGREGATED

    async def _batch_finalization(self, event):
        if not self._in_batch(event) or self.step is not Step.TREE_NONCES_AGGREGATED:
            return
        if self.vtxo_tree is None and self.vtxo_chunks:
            self.vtxo_tree = TxTree.create(self.vtxo_chunks)
            self.vtxo_tree.validate()
        if self.vtxo_tree is None and not self.skip_vtxo_tree_signing:
            raise BatchFailedError("vtxo tree not received before finalization")
        if self.connector_chunks:
            self.connector_tree = TxTree.create(self.connector_chunks)
            self.connector_tree.validate()
        await self.handler.on_batch_finalization(event, self.vtxo_tree, self.connector_tree)
        self.step = Step.BATCH_FINALIZATION

    async def _batch_finalized(self, event):
        if not self._in_batch(event) or self.step is not Step.BATCH_FINALIZATION:
            return None
        await self.handler.on_batch_finalized(event)
        self.logger.info(f"batch {event.id} finalized in {event.commitment_txid}")
        return event.commitment_txid

    async def _batch_failed(self, event):
        if not self._in_batch(event):
            return
        await self.handler.on_batch_failed(event)
        self.logger.error(f"batch {event.id} failed: {event.reason}")
        raise BatchFailedError(event.reason)


async def join_batch(
    events: AsyncIterable[SettlementEvent], handler: BatchHandler, skip_vtxo_tree_signing: bool = False
) -> str:
    """Run ``handler`` through one batch; returns the commitment txid."""
    return await BatchJoiner(handler, skip_vtxo_tree_signing).join(events)
