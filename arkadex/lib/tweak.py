# -*- coding: utf-8 -*-

"""Key tweaks.

``compute_arkade_script_public_key`` binds an Arkade script to the
introspector key:

    tweaked = P + taggedHash("ArkScriptHash", script) * G

This is a plain point addition, not the BIP-341 taproot tweak, which lives in
``taproot_tweak_pubkey`` for building VTXO outputs.
"""

import hashlib
from typing import Tuple

import coincurve

CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ARKADE_SCRIPT_TAG = "ArkScriptHash"
TAPTWEAK_TAG = "TapTweak"


class TweakError(ValueError):
    pass


def tagged_hash(tag: str, msg: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + msg).digest()


def arkade_script_hash(script: bytes) -> bytes:
    return tagged_hash(ARKADE_SCRIPT_TAG, script)


def to_xonly(pubkey: bytes) -> bytes:
    if len(pubkey) == 33:
        return pubkey[1:]
    if len(pubkey) == 32:
        return pubkey
    raise TweakError(f"public key must be 32 or 33 bytes, got {len(pubkey)}")


def lift_x(xonly: bytes) -> coincurve.PublicKey:
    """Return the curve point with x coordinate ``xonly`` and even Y."""
    try:
        return coincurve.PublicKey(b"\x02" + xonly)
    except ValueError as e:
        raise TweakError(f"{xonly.hex()} is not a valid x coordinate") from e


def compute_arkade_script_public_key(pubkey: bytes, script: bytes) -> bytes:
    """Return the 32-byte x-only key the introspector signs with for ``script``.

    ``pubkey`` may be compressed or x-only.  The point is always rebuilt with
    even Y, so the sign of a compressed key has no effect on the result.
    """
    point = lift_x(to_xonly(pubkey))
    scalar = int.from_bytes(arkade_script_hash(script), "big") % CURVE_ORDER or 1
    tweaked = point.add(scalar.to_bytes(32, "big"))
    return tweaked.format(compressed=True)[1:]


def taproot_tweak_pubkey(internal_key: bytes, merkle_root: bytes = b"") -> Tuple[bytes, int]:
    """BIP-341 output key for ``internal_key`` committing to ``merkle_root``.

    Returns the x-only output key and the parity of its Y coordinate.
    """
    internal_key = to_xonly(internal_key)
    tweak = int.from_bytes(tagged_hash(TAPTWEAK_TAG, internal_key + merkle_root), "big")
    if tweak >= CURVE_ORDER:
        raise TweakError("taproot tweak exceeds curve order")
    output = lift_x(internal_key).add(tweak.to_bytes(32, "big")).format(compressed=True)
    return output[1:], output[0] & 1
