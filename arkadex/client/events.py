# -*- coding: utf-8 -*-

"""Settlement events broadcast by the Ark coordinator during a batch.

The event stream wraps every message as ``{"result": {<kind>: {...}}}``;
``parse_settlement_event`` turns the inner object into one of the event
types below.  Kinds this client does not act on (heartbeats and the like)
parse to ``None``.
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Union

from arkadex.lib.tx_tree import TxTreeNode


class Outpoint(NamedTuple):
    txid: str
    vout: int


@dataclass
class BatchStartedEvent:
    id: str
    intent_id_hashes: List[str]
    batch_expiry: int


@dataclass
class TreeSigningStartedEvent:
    id: str
    cosigners_public_keys: List[str]
    unsigned_commitment_tx: str


@dataclass
class TreeNoncesEvent:
    id: str
    txid: str
    nonces: Dict[str, str]
    topic: List[str] = field(default_factory=list)


@dataclass
class TreeTxEvent:
    id: str
    batch_index: int
    chunk: TxTreeNode
    topic: List[str] = field(default_factory=list)


@dataclass
class TreeSignatureEvent:
    id: str
    batch_index: int
    txid: str
    signature: str
    topic: List[str] = field(default_factory=list)


@dataclass
class BatchFinalizationEvent:
    id: str
    commitment_tx: str
    connectors_index: Dict[str, Outpoint] = field(default_factory=dict)


@dataclass
class BatchFinalizedEvent:
    id: str
    commitment_txid: str


@dataclass
class BatchFailedEvent:
    id: str
    reason: str


SettlementEvent = Union[
    BatchStartedEvent,
    TreeSigningStartedEvent,
    TreeNoncesEvent,
    TreeTxEvent,
    TreeSignatureEvent,
    BatchFinalizationEvent,
    BatchFinalizedEvent,
    BatchFailedEvent,
]


def _batch_started(data):
    return BatchStartedEvent(
        id=data["id"],
        intent_id_hashes=list(data.get("intentIdHashes") or []),
        batch_expiry=int(data.get("batchExpiry") or 0),
    )


def _tree_signing_started(data):
    return TreeSigningStartedEvent(
        id=data["id"],
        cosigners_public_keys=list(data.get("cosignersPubkeys") or []),
        unsigned_commitment_tx=data.get("unsignedCommitmentTx", ""),
    )


def _tree_nonces(data):
    return TreeNoncesEvent(
        id=data["id"],
        txid=data["txid"],
        nonces=dict(data.get("nonces") or {}),
        topic=list(data.get("topic") or []),
    )


def _tree_tx(data):
    return TreeTxEvent(
        id=data["id"],
        batch_index=int(data.get("batchIndex") or 0),
        chunk=TxTreeNode.from_json(data),
        topic=list(data.get("topic") or []),
    )


def _tree_signature(data):
    return TreeSignatureEvent(
        id=data["id"],
        batch_index=int(data.get("batchIndex") or 0),
        txid=data["txid"],
        signature=data["signature"],
        topic=list(data.get("topic") or []),
    )


def _batch_finalization(data):
    connectors = {
        key: Outpoint(outpoint["txid"], int(outpoint.get("vout") or 0))
        for key, outpoint in (data.get("connectorsIndex") or {}).items()
    }
    return BatchFinalizationEvent(
        id=data["id"],
        commitment_tx=data.get("commitmentTx", ""),
        connectors_index=connectors,
    )


def _batch_finalized(data):
    return BatchFinalizedEvent(id=data["id"], commitment_txid=data.get("commitmentTxid", ""))


def _batch_failed(data):
    return BatchFailedEvent(id=data["id"], reason=data.get("reason", ""))


_PARSERS = {
    "batchStarted": _batch_started,
    "treeSigningStarted": _tree_signing_started,
    "treeNonces": _tree_nonces,
    "treeTx": _tree_tx,
    "treeSignature": _tree_signature,
    "batchFinalization": _batch_finalization,
    "batchFinalized": _batch_finalized,
    "batchFailed": _batch_failed,
}


def parse_settlement_event(result: dict) -> Optional[SettlementEvent]:
    """Parse the ``result`` object of one stream message.

    Raises ``ValueError`` if a known event is missing a required field.
    """
    for kind, parser in _PARSERS.items():
        data = result.get(kind)
        if data is None:
            continue
        try:
            return parser(data)
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"malformed {kind} event: {e!r}") from e
    return None
