# -*- coding: utf-8 -*-

"""VTXO taproot script trees.

A VTXO is locked to a taproot output whose internal key is the BIP-341
unspendable point, so it can only be spent through one of its leaves.
``ArkadeVtxoScript`` additionally lets a leaf carry an embedded Arkade script:
the introspector key tweaked by that script is appended to the leaf's signer
set, and the embedded script is remembered by leaf index so the matching
PSBT field can be set when signing.
"""

from types import MappingProxyType
from typing import Dict, List, NamedTuple, Sequence, Tuple, Union

from bitcointx.core.script import CScript, TaprootScriptTree
from bitcointx.core.serialize import BytesSerializer

from arkadex.lib.tapscript import (
    ConditionCSVMultisigTapscript,
    CSVMultisigTapscript,
    TapscriptDecodeError,
    TapscriptTemplate,
    encode_tapscript,
    with_pubkey,
)
from arkadex.lib.tweak import compute_arkade_script_public_key, taproot_tweak_pubkey

TAPROOT_UNSPENDABLE_KEY = bytes.fromhex("50929b74c1a04954b78b4b6035e97a5e078a5a0f28ec96d547bfee9ace803ac0")
TAP_LEAF_VERSION = 0xC0


class TapLeafScript(NamedTuple):
    control_block: bytes
    script: bytes
    leaf_version: int = TAP_LEAF_VERSION


class ArkadeLeaf(NamedTuple):
    embedded_script: bytes
    template: TapscriptTemplate


VtxoLeaf = Union[ArkadeLeaf, bytes]


def _assemble_tree(scripts: Sequence[bytes]) -> TaprootScriptTree:
    """Huffman-style layout: the two lightest trailing nodes are merged until one is left.

    Nodes are kept heaviest first with a stable sort, so for equal weights the
    last two in list order are joined, e.g. [A, B, C] becomes ((B, C), A).
    """
    nodes = [(1, CScript(script, name=str(i))) for i, script in enumerate(scripts)]
    while len(nodes) > 1:
        nodes.sort(key=lambda node: -node[0])
        right_weight, right = nodes.pop()
        left_weight, left = nodes.pop()
        nodes.append((left_weight + right_weight, TaprootScriptTree([left, right])))
    root = nodes[0][1]
    if isinstance(root, TaprootScriptTree):
        return root
    return TaprootScriptTree([root])


class VtxoScript:
    def __init__(self, scripts: Sequence[bytes]):
        if not scripts:
            raise ValueError("a VTXO script needs at least one leaf")
        self.scripts: List[bytes] = [bytes(script) for script in scripts]

        tree = _assemble_tree(self.scripts)
        self.merkle_root = tree.merkle_root
        self.tweaked_public_key, parity = taproot_tweak_pubkey(TAPROOT_UNSPENDABLE_KEY, self.merkle_root)

        self.leaves: List[TapLeafScript] = []
        for i, script in enumerate(self.scripts):
            _, path, version = tree.get_script_with_path_and_leaf_version(str(i))
            control_block = bytes([version | parity]) + TAPROOT_UNSPENDABLE_KEY + path
            self.leaves.append(TapLeafScript(control_block, script, version))

    @classmethod
    def decode(cls, tap_tree: bytes) -> "VtxoScript":
        """Build from the PSBT taptree encoding (depth, leaf version, script)."""
        scripts = []
        data = bytes(tap_tree)
        while data:
            if len(data) < 2:
                raise ValueError("truncated taptree entry")
            script, data = BytesSerializer.deserialize_partial(data[2:])
            scripts.append(script)
        return cls(scripts)

    def encode(self) -> bytes:
        return b"".join(bytes([1, TAP_LEAF_VERSION]) + BytesSerializer.serialize(script) for script in self.scripts)

    @property
    def pk_script(self) -> bytes:
        return bytes(CScript([1, self.tweaked_public_key]))

    def find_leaf(self, script_hex: str) -> TapLeafScript:
        for leaf in self.leaves:
            if leaf.script.hex() == script_hex:
                return leaf
        raise KeyError(f"leaf '{script_hex}' not found")

    def exit_paths(self) -> List[Union[CSVMultisigTapscript, ConditionCSVMultisigTapscript]]:
        """Leaves that can be spent unilaterally after a relative timelock."""
        paths = []
        for script in self.scripts:
            for template_cls in (CSVMultisigTapscript, ConditionCSVMultisigTapscript):
                try:
                    paths.append(template_cls.decode(script))
                    break
                except (TapscriptDecodeError, ValueError):
                    continue
        return paths


def process_scripts(leaves: Sequence[VtxoLeaf], introspector_pubkey: bytes) -> Tuple[List[bytes], Dict[int, bytes]]:
    """Turn ``leaves`` into raw leaf scripts plus the embedded script of each enhanced leaf.

    Raw leaves are passed through unchanged.
    """
    scripts: List[bytes] = []
    arkade_map: Dict[int, bytes] = {}
    for leaf in leaves:
        if isinstance(leaf, ArkadeLeaf):
            tweaked_key = compute_arkade_script_public_key(introspector_pubkey, leaf.embedded_script)
            template = with_pubkey(leaf.template, tweaked_key)
            arkade_map[len(scripts)] = bytes(leaf.embedded_script)
            scripts.append(encode_tapscript(template))
        elif isinstance(leaf, (bytes, bytearray)):
            scripts.append(bytes(leaf))
        else:
            raise TypeError(f"leaf must be an ArkadeLeaf or bytes, not {type(leaf).__name__}")
    return scripts, arkade_map


class ArkadeVtxoScript(VtxoScript):
    def __init__(self, leaves: Sequence[VtxoLeaf], introspector_pubkey: bytes):
        scripts, arkade_map = process_scripts(leaves, introspector_pubkey)
        super().__init__(scripts)
        self.arkade_scripts = MappingProxyType(arkade_map)


def tap_leaf_hash(script: bytes) -> bytes:
    """BIP-341 leaf hash of a tapscript, which is also the root of a one leaf tree."""
    return TaprootScriptTree([CScript(script)]).merkle_root
