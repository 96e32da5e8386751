import pytest

from arkadex.lib.script import (
    InvalidASMTokenError,
    ScriptDecodeError,
    TruncatedPushDataError,
    UnknownOpcodeError,
    asm_to_bytes,
    bytes_to_asm,
    decode,
    encode,
    from_asm,
    to_asm,
)

PKH = bytes.fromhex("751e76e8199196d454941c45d1b3a323f1433bd6")
P2PKH = bytes.fromhex("76a914751e76e8199196d454941c45d1b3a323f1433bd688ac")


def test_encode_p2pkh():
    assert encode(["DUP", "HASH160", PKH, "EQUALVERIFY", "CHECKSIG"]) == P2PKH
    assert encode(["OP_DUP", "OP_HASH160", PKH, "OP_EQUALVERIFY", "OP_CHECKSIG"]) == P2PKH


def test_decode_p2pkh():
    assert decode(P2PKH) == ["DUP", "HASH160", PKH, "EQUALVERIFY", "CHECKSIG"]


def test_extension_opcodes():
    assert encode(["ADD64", "SUB64"]) == b"\xd7\xd8"
    assert decode(bytes.fromhex("cf0087")) == ["INSPECTOUTPUTVALUE", 0, "EQUAL"]


def test_small_integers():
    assert encode([0, 1, 16]) == b"\x00\x51\x60"
    assert decode(b"\x00\x51\x60") == [0, 1, 16]


def test_script_numbers():
    assert encode([17]) == b"\x01\x11"
    assert encode([144]) == b"\x02\x90\x00"
    assert encode([1000]) == b"\x02\xe8\x03"
    assert encode([-1]) == b"\x01\x81"
    # numbers outside 0..16 come back as their pushed bytes
    assert decode(encode([1000])) == [b"\xe8\x03"]


def test_push_sizes():
    assert encode([b"\xab" * 75]) == b"\x4b" + b"\xab" * 75
    assert encode([b"\xab" * 76]) == b"\x4c\x4c" + b"\xab" * 76
    assert encode([b"\x00" * 300]) == b"\x4d\x2c\x01" + b"\x00" * 300
    assert decode(b"\x4c\x02\xab\xcd") == [b"\xab\xcd"]
    assert decode(b"\x4d\x2c\x01" + b"\x00" * 300) == [b"\x00" * 300]


def test_empty_push_is_op_0():
    assert encode([b""]) == b"\x00"
    assert decode(encode([b""])) == [0]


def test_round_trip():
    scripts = [
        ["DUP", 5, b"\x01\x02", "ADD64", 0, "CHECKSIGADD"],
        [b"\xff" * 32, "CHECKSIGVERIFY", b"\xee" * 32, "CHECKSIG"],
        ["INSPECTINPUTVALUE", "LE64TOSCRIPTNUM", 16, "GREATERTHANOREQUAL64", "VERIFY"],
        [b"\x11" * 520, "SHA256", "1NEGATE"],
    ]
    for ops in scripts:
        assert decode(encode(ops)) == ops


def test_truncated_push():
    with pytest.raises(TruncatedPushDataError):
        decode(b"\x05\x01\x02")
    with pytest.raises(TruncatedPushDataError):
        decode(b"\x4c")
    with pytest.raises(TruncatedPushDataError):
        decode(b"\x4d\x01")
    with pytest.raises(TruncatedPushDataError):
        decode(b"\x4e\x10\x00\x00\x00\xab")


def test_unknown_opcodes():
    with pytest.raises(UnknownOpcodeError):
        decode(b"\x51\xbb")
    with pytest.raises(UnknownOpcodeError):
        decode(b"\xc8")
    with pytest.raises(UnknownOpcodeError):
        encode(["NOTANOPCODE"])
    # all codec errors share one family
    with pytest.raises(ScriptDecodeError):
        decode(b"\xfa")
    with pytest.raises(ValueError):
        decode(b"\xfb")


def test_encode_rejects_other_types():
    with pytest.raises(TypeError):
        encode([1.5])
    with pytest.raises(TypeError):
        encode([None])


def test_to_asm():
    assert bytes_to_asm(P2PKH) == f"OP_DUP OP_HASH160 {PKH.hex()} OP_EQUALVERIFY OP_CHECKSIG"
    assert to_asm([0, 7, 1000, "ADD64", b"\xde\xad"]) == "OP_0 OP_7 1000 OP_ADD64 dead"


def test_from_asm():
    assert from_asm("OP_ADD64 OP_0 OP_16 deadbeef") == ["ADD64", 0, 16, b"\xde\xad\xbe\xef"]
    assert from_asm("OP_FALSE OP_TRUE OP_NOP3") == [0, 1, "CHECKSEQUENCEVERIFY"]
    assert from_asm("DUP  HASH160\tABCD") == ["DUP", "HASH160", b"\xab\xcd"]
    assert from_asm("") == []


def test_asm_bytes():
    assert asm_to_bytes("OP_INSPECTOUTPUTVALUE OP_1 OP_EQUAL") == b"\xcf\x51\x87"
    text = "OP_SHA256INITIALIZE 0102 OP_SHA256FINALIZE OP_EQUAL"
    assert bytes_to_asm(asm_to_bytes(text)) == text


@pytest.mark.parametrize("token", ["OP_BOGUS", "abc", "xyz", "OP_17", "0x01"])
def test_invalid_asm_tokens(token):
    with pytest.raises(InvalidASMTokenError):
        from_asm(f"OP_DUP {token}")
