from __future__ import annotations

"""
Blob builders.

A blob is the secret commitment a circuit re-derives from its private witness
and compares byte-for-byte against the public HyliOutput record. Builders are
deterministic: the same inputs always yield identical bytes.

Secret-check layout (32 bytes):
    sha256(identity_utf8 || ":" || sha256(password_utf8))

JWT layout (32 + 1 + 16 + 1 + len(modulus) bytes, 306 for RSA-2048):
    mail_hash (32, big-endian) || ":" || ascii(nonce) zero-padded to 16 || ":" || reversed(modulus bytes)

The modulus is reversed (little-endian) while hash and nonce are not; the
circuit reads them that way.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from hyli_noir.codec import b64url_to_bytes, encode_to_hex, field_to_bytes32, sha256, string_to_bytes
from hyli_noir.errors import ValidationError


SECRET_CONTRACT_NAME = "check_secret"
JWT_CONTRACT_NAME = "check_jwt"

SEPARATOR = 0x3A  # ':'
MAIL_HASH_LEN = 32
NONCE_SLOT_LEN = 16


@dataclass(frozen=True)
class Blob:
    contract_name: str
    data: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.contract_name, str) or not self.contract_name:
            raise ValidationError("blob contract_name must be a non-empty string")
        object.__setattr__(self, "data", bytes(self.data))

    def to_dict(self) -> Dict[str, Any]:
        return {"contract_name": self.contract_name, "data": list(self.data)}


# ---------- secret-check variant ----------

def hash_password(password: str) -> bytes:
    return sha256(string_to_bytes(password))


def secret_commitment(identity: str, password: str) -> bytes:
    return sha256(string_to_bytes(f"{identity}:") + hash_password(password))


def identity_hash(identity: str, password: str) -> str:
    """Hex form of the stored hash; safe to publish."""
    return encode_to_hex(secret_commitment(identity, password))


def build_secret_blob(identity: str, password: str, contract_name: str = SECRET_CONTRACT_NAME) -> Blob:
    return Blob(contract_name=contract_name, data=secret_commitment(identity, password))


# ---------- JWT variant ----------

def encode_nonce(nonce: str) -> bytes:
    try:
        encoded = nonce.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValidationError("JWT nonce must be ASCII") from e
    if len(encoded) > NONCE_SLOT_LEN:
        raise ValidationError(f"JWT nonce is {len(encoded)} bytes; the blob slot holds {NONCE_SLOT_LEN}")
    return encoded + b"\x00" * (NONCE_SLOT_LEN - len(encoded))


def build_jwt_blob(
    mail_hash: Union[bytes, int, str],
    nonce: str,
    pubkey_modulus_b64url: str,
    contract_name: str = JWT_CONTRACT_NAME,
) -> Blob:
    """
    mail_hash may be the 32 raw bytes or the field element returned by the
    Poseidon2 hasher (int or hex/decimal string).
    """
    if isinstance(mail_hash, (bytes, bytearray)):
        mh = bytes(mail_hash)
        if len(mh) != MAIL_HASH_LEN:
            raise ValidationError(f"mail_hash must be {MAIL_HASH_LEN} bytes, got {len(mh)}")
    else:
        mh = field_to_bytes32(mail_hash)

    modulus = b64url_to_bytes(pubkey_modulus_b64url)
    if not modulus:
        raise ValidationError("RSA modulus is empty")

    data = mh + bytes([SEPARATOR]) + encode_nonce(nonce) + bytes([SEPARATOR]) + modulus[::-1]
    return Blob(contract_name=contract_name, data=data)


def jwt_blob_len(modulus_len: int = 256) -> int:
    return MAIL_HASH_LEN + 1 + NONCE_SLOT_LEN + 1 + modulus_len
