import asyncio

import pytest
from bitcointx.core import COutPoint, CMutableTransaction, CMutableTxIn, CMutableTxOut, lx
from bitcointx.core.psbt import PartiallySignedTransaction
from bitcointx.core.script import CScript

from arkadex.client.events import (
    BatchFailedEvent,
    BatchFinalizationEvent,
    BatchFinalizedEvent,
    BatchStartedEvent,
    TreeNoncesEvent,
    TreeSignatureEvent,
    TreeSigningStartedEvent,
    TreeTxEvent,
)
from arkadex.lib.psbt import get_tap_key_sig, psbt_txid
from arkadex.lib.tx_tree import TxTreeNode
from arkadex.wallet.batch import BatchHandler
from arkadex.wallet.join import BatchFailedError, BatchJoiner, join_batch

P2TR = b"\x51\x20" + bytes.fromhex("ab" * 32)
COMMITMENT_TXID = "cd" * 32


def make_chunk(txid, vout, amount=1000):
    tx = CMutableTransaction(
        vin=[CMutableTxIn(COutPoint(lx(txid), vout))],
        vout=[CMutableTxOut(amount, CScript(P2TR))],
        nVersion=3,
    )
    psbt = PartiallySignedTransaction(unsigned_tx=tx)
    return TxTreeNode(psbt_txid(psbt), psbt.to_base64(), {})


VTXO_CHUNK = make_chunk(COMMITMENT_TXID, 0)
CONNECTOR_CHUNK = make_chunk(COMMITMENT_TXID, 1, 330)


class RecordingHandler(BatchHandler):
    def __init__(self, skip_batches=(), skip_signing=(), nonce_rounds=1):
        self.skip_batches = set(skip_batches)
        self.skip_signing = set(skip_signing)
        self.nonce_rounds = nonce_rounds
        self.calls = []
        self.finalization = None

    def reset(self):
        self.calls.append(("reset",))

    async def on_batch_started(self, event):
        self.calls.append(("batch_started", event.id))
        return event.id in self.skip_batches

    async def on_tree_signing_started(self, event, vtxo_tree):
        self.calls.append(("tree_signing_started", event.id, vtxo_tree.txid))
        return event.id in self.skip_signing

    async def on_tree_nonces(self, event):
        self.calls.append(("tree_nonces", event.id))
        return sum(call[0] == "tree_nonces" for call in self.calls) >= self.nonce_rounds

    async def on_batch_finalization(self, event, vtxo_tree=None, connector_tree=None):
        self.calls.append(("batch_finalization", event.id))
        self.finalization = (vtxo_tree, connector_tree)

    async def on_batch_finalized(self, event):
        self.calls.append(("batch_finalized", event.id))

    async def on_batch_failed(self, event):
        self.calls.append(("batch_failed", event.id))


def round_events(batch_id):
    return [
        BatchStartedEvent(batch_id, ["aa"], 144),
        TreeTxEvent(batch_id, 0, VTXO_CHUNK),
        TreeTxEvent(batch_id, 1, CONNECTOR_CHUNK),
        TreeSigningStartedEvent(batch_id, ["02" + "11" * 32], "cHNidP8="),
        TreeNoncesEvent(batch_id, VTXO_CHUNK.txid, {}),
        TreeSignatureEvent(batch_id, 0, VTXO_CHUNK.txid, "99" * 64),
        BatchFinalizationEvent(batch_id, "cHNidP8="),
        BatchFinalizedEvent(batch_id, COMMITMENT_TXID),
    ]


async def stream(events):
    for event in events:
        yield event


def run_join(handler, events):
    return asyncio.run(join_batch(stream(events), handler))


def test_full_round():
    handler = RecordingHandler()
    assert run_join(handler, round_events("b1")) == COMMITMENT_TXID
    assert handler.calls == [
        ("reset",),
        ("batch_started", "b1"),
        ("tree_signing_started", "b1", VTXO_CHUNK.txid),
        ("tree_nonces", "b1"),
        ("batch_finalization", "b1"),
        ("batch_finalized", "b1"),
    ]

    vtxo_tree, connector_tree = handler.finalization
    assert vtxo_tree.txid == VTXO_CHUNK.txid
    assert get_tap_key_sig(vtxo_tree.root, 0) == b"\x99" * 64
    assert connector_tree.txid == CONNECTOR_CHUNK.txid


def test_events_of_other_batches_are_ignored():
    handler = RecordingHandler()
    events = round_events("b1")
    events.insert(2, BatchFailedEvent("other", "unrelated"))
    events.insert(5, TreeNoncesEvent("other", "t", {}))
    events.insert(7, BatchFinalizedEvent("other", "ff" * 32))
    assert run_join(handler, events) == COMMITMENT_TXID
    assert ("batch_failed", "other") not in handler.calls


def test_waits_for_all_nonces():
    handler = RecordingHandler(nonce_rounds=2)
    events = round_events("b1")
    events.insert(5, TreeNoncesEvent("b1", VTXO_CHUNK.txid, {}))
    assert run_join(handler, events) == COMMITMENT_TXID
    assert [call[0] for call in handler.calls].count("tree_nonces") == 2


def test_stream_closed():
    handler = RecordingHandler()
    with pytest.raises(BatchFailedError, match="event stream closed"):
        run_join(handler, round_events("b1")[:-1])


def test_batch_failed():
    handler = RecordingHandler()
    events = round_events("b1")[:4] + [BatchFailedEvent("b1", "not enough participants")]
    with pytest.raises(BatchFailedError, match="not enough participants"):
        run_join(handler, events)
    assert handler.calls[-1] == ("batch_failed", "b1")


def test_skipped_batch_then_next_round():
    handler = RecordingHandler(skip_batches={"b1"})
    events = round_events("b1")[:-1] + round_events("b2")
    assert run_join(handler, events) == COMMITMENT_TXID
    assert [call for call in handler.calls if call[0] != "reset"][:2] == [
        ("batch_started", "b1"),
        ("batch_started", "b2"),
    ]
    assert ("batch_finalized", "b2") in handler.calls


def test_not_a_cosigner_then_next_round():
    handler = RecordingHandler(skip_signing={"b1"})
    events = round_events("b1") + round_events("b2")
    assert run_join(handler, events) == COMMITMENT_TXID
    assert ("tree_nonces", "b1") not in handler.calls
    assert ("batch_finalized", "b1") not in handler.calls
    assert handler.calls[-1] == ("batch_finalized", "b2")


def test_tree_signature_before_tree():
    joiner = BatchJoiner(RecordingHandler())
    asyncio.run(joiner.process(BatchStartedEvent("b1", [], 144)))
    with pytest.raises(BatchFailedError):
        asyncio.run(joiner.process(TreeSignatureEvent("b1", 0, VTXO_CHUNK.txid, "99" * 64)))


def test_skip_vtxo_tree_signing():
    handler = RecordingHandler()
    events = [
        BatchStartedEvent("b1", ["aa"], 144),
        TreeTxEvent("b1", 1, CONNECTOR_CHUNK),
        TreeSigningStartedEvent("b1", ["02" + "11" * 32], "cHNidP8="),
        TreeNoncesEvent("b1", VTXO_CHUNK.txid, {}),
        TreeSignatureEvent("b1", 0, VTXO_CHUNK.txid, "99" * 64),
        BatchFinalizationEvent("b1", "cHNidP8="),
        BatchFinalizedEvent("b1", COMMITMENT_TXID),
    ]
    assert asyncio.run(join_batch(stream(events), handler, skip_vtxo_tree_signing=True)) == COMMITMENT_TXID
    assert [call[0] for call in handler.calls] == ["reset", "batch_started", "batch_finalization", "batch_finalized"]

    vtxo_tree, connector_tree = handler.finalization
    assert vtxo_tree is None
    assert connector_tree.txid == CONNECTOR_CHUNK.txid


def test_skip_vtxo_tree_signing_still_builds_received_tree():
    handler = RecordingHandler()
    events = [
        BatchStartedEvent("b1", ["aa"], 144),
        TreeTxEvent("b1", 0, VTXO_CHUNK),
        BatchFinalizationEvent("b1", "cHNidP8="),
        BatchFinalizedEvent("b1", COMMITMENT_TXID),
    ]
    assert asyncio.run(join_batch(stream(events), handler, skip_vtxo_tree_signing=True)) == COMMITMENT_TXID
    vtxo_tree, connector_tree = handler.finalization
    assert vtxo_tree.txid == VTXO_CHUNK.txid
    assert connector_tree is None
