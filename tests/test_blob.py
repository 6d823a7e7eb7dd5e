import hashlib

import pytest

from hyli_noir.blob import (
    Blob,
    build_jwt_blob,
    build_secret_blob,
    encode_nonce,
    hash_password,
    identity_hash,
    jwt_blob_len,
)
from hyli_noir.errors import DecodeError, ValidationError

from conftest import b64url


def _expected_commitment(identity: str, password: str) -> bytes:
    return hashlib.sha256(identity.encode() + b":" + hashlib.sha256(password.encode()).digest()).digest()


def test_hash_password_is_sha256():
    assert hash_password("secret123") == hashlib.sha256(b"secret123").digest()
    assert len(hash_password("")) == 32


def test_secret_blob_alice():
    blob = build_secret_blob("alice", "secret123")
    assert blob.contract_name == "check_secret"
    assert blob.data == _expected_commitment("alice", "secret123")
    assert len(blob.data) == 32
    assert identity_hash("alice", "secret123") == blob.data.hex()


def test_secret_blob_is_deterministic_and_identity_bound():
    assert build_secret_blob("alice", "pw") == build_secret_blob("alice", "pw")
    assert build_secret_blob("alice", "pw").data != build_secret_blob("bob", "pw").data
    assert build_secret_blob("alice", "pw", contract_name="other").contract_name == "other"


def test_blob_requires_contract_name_and_serializes_data_as_list():
    with pytest.raises(ValidationError):
        Blob(contract_name="", data=b"x")
    b = Blob(contract_name="c", data=bytearray(b"\x01\x02"))
    assert isinstance(b.data, bytes)
    assert b.to_dict() == {"contract_name": "c", "data": [1, 2]}


def test_encode_nonce_slot():
    assert encode_nonce("abc") == b"abc" + b"\x00" * 13
    assert encode_nonce("x" * 16) == b"x" * 16
    with pytest.raises(ValidationError):
        encode_nonce("x" * 17)
    with pytest.raises(ValidationError):
        encode_nonce("nöñce")


def test_jwt_blob_layout():
    modulus = bytes(range(1, 256)) + b"\xff"
    blob = build_jwt_blob(0x1234, "abc", b64url(modulus))

    assert blob.contract_name == "check_jwt"
    assert len(blob.data) == jwt_blob_len() == 306
    assert blob.data[:32] == (0x1234).to_bytes(32, "big")
    assert blob.data[32] == ord(":")
    assert blob.data[33:49] == b"abc" + b"\x00" * 13
    assert blob.data[49] == ord(":")
    assert blob.data[50:] == modulus[::-1]


def test_jwt_blob_accepts_raw_or_hex_mail_hash():
    mh = b"\x07" * 32
    modulus = b64url(b"\x01" * 256)
    a = build_jwt_blob(mh, "n", modulus)
    b = build_jwt_blob("0x" + mh.hex(), "n", modulus)
    assert a == b

    with pytest.raises(ValidationError):
        build_jwt_blob(b"\x07" * 31, "n", modulus)


def test_jwt_blob_rejects_bad_modulus():
    with pytest.raises(DecodeError):
        build_jwt_blob(1, "n", "abcde")
    with pytest.raises(ValidationError):
        build_jwt_blob(1, "n", "")
