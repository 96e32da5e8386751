# -*- coding: utf-8 -*-

"""Trees of transactions: the shared VTXO tree and the connector tree.

The coordinator streams a tree as flat chunks, each naming the child
transaction that spends a given output.  ``TxTree.create`` reassembles them.
"""

from typing import Callable, Dict, Iterator, List, NamedTuple, Optional

from bitcointx.core import b2lx
from bitcointx.core.psbt import PartiallySignedTransaction

from arkadex.lib.psbt import from_base64, psbt_txid


class TxTreeError(Exception):
    pass


class TxTreeNode(NamedTuple):
    txid: str
    tx: str
    children: Dict[int, str]

    @classmethod
    def from_json(cls, data: dict) -> "TxTreeNode":
        children = {int(index): txid for index, txid in (data.get("children") or {}).items()}
        return cls(data["txid"], data["tx"], children)

    def to_json(self) -> dict:
        return {
            "txid": self.txid,
            "tx": self.tx,
            "children": {str(index): txid for index, txid in self.children.items()},
        }


class TxTree:
    def __init__(self, root: PartiallySignedTransaction, children: Optional[Dict[int, "TxTree"]] = None):
        self.root = root
        self.children: Dict[int, TxTree] = dict(children or {})

    @property
    def txid(self) -> str:
        return psbt_txid(self.root)

    @classmethod
    def create(cls, chunks: List[TxTreeNode]) -> "TxTree":
        if not chunks:
            raise TxTreeError("empty chunks")

        by_txid = {chunk.txid: chunk for chunk in chunks}
        child_txids = {txid for chunk in chunks for txid in chunk.children.values()}
        roots = [chunk for chunk in chunks if chunk.txid not in child_txids]
        if len(roots) != 1:
            raise TxTreeError(f"expected exactly one root, found {len(roots)}")

        tree = cls._build(roots[0], by_txid, set())
        if tree.size() != len(by_txid):
            raise TxTreeError("some chunks are not reachable from the root")
        return tree

    @classmethod
    def _build(cls, chunk, by_txid, seen):
        if chunk.txid in seen:
            raise TxTreeError(f"transaction {chunk.txid} appears twice in the tree")
        seen.add(chunk.txid)

        root = from_base64(chunk.tx)
        if psbt_txid(root) != chunk.txid:
            raise TxTreeError(f"chunk {chunk.txid} has txid {psbt_txid(root)}")

        children = {}
        for output_index, child_txid in chunk.children.items():
            child = by_txid.get(child_txid)
            if child is None:
                raise TxTreeError(f"child {child_txid} of {chunk.txid} not found")
            children[output_index] = cls._build(child, by_txid, seen)
        return cls(root, children)

    def iterator(self) -> Iterator["TxTree"]:
        """Pre-order walk, children in output index order."""
        yield self
        for output_index in sorted(self.children):
            yield from self.children[output_index].iterator()

    def leaves(self) -> List["TxTree"]:
        return [node for node in self.iterator() if not node.children]

    def size(self) -> int:
        return sum(1 for _ in self.iterator())

    def find(self, txid: str) -> Optional["TxTree"]:
        for node in self.iterator():
            if node.txid == txid:
                return node
        return None

    def update(self, txid: str, fn: Callable[[PartiallySignedTransaction], None]):
        node = self.find(txid)
        if node is None:
            raise TxTreeError(f"transaction {txid} not found in tree")
        fn(node.root)

    def validate(self):
        """Check every child spends its parent's output at the declared index."""
        parent_txid = self.txid
        outputs = self.root.unsigned_tx.vout
        for output_index, child in self.children.items():
            if output_index >= len(outputs):
                raise TxTreeError(f"{parent_txid} has no output {output_index}")
            vin = child.root.unsigned_tx.vin
            if len(vin) != 1:
                raise TxTreeError(f"{child.txid} must have exactly one input")
            prevout = vin[0].prevout
            if b2lx(prevout.hash) != parent_txid or prevout.n != output_index:
                raise TxTreeError(f"{child.txid} does not spend {parent_txid}:{output_index}")
            child.validate()

    def serialize(self) -> List[TxTreeNode]:
        return [
            TxTreeNode(
                node.txid,
                node.root.to_base64(),
                {index: child.txid for index, child in node.children.items()},
            )
            for node in self.iterator()
        ]
