from __future__ import annotations

"""
HyliOutput record assembly.

The record is the public-input ABI shared by every circuit in the family.
Padded fields are fixed width; each has a *_len companion holding the true
(unpadded) byte length, and every byte past that length is zero.

Padding is always applied; truncation never is. A blob larger than the
circuit's blob_capacity is rejected.
"""

from dataclasses import dataclass, field
from typing import Any, Dict
import re

from hyli_noir.blob import Blob
from hyli_noir.codec import pad_bytes, string_to_bytes
from hyli_noir.errors import ValidationError


VERSION = 1
STATE_LEN = 4
IDENTITY_WIDTH = 256
TX_HASH_WIDTH = 64
CONTRACT_NAME_WIDTH = 256
BLOB_NUMBER = 1

U32_MAX = 0xFFFFFFFF

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def _zero_state() -> bytes:
    return b"\x00" * STATE_LEN


def _check_u32(name: str, v: int) -> None:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0 or v > U32_MAX:
        raise ValidationError(f"{name} must be a u32, got {v!r}")


def _check_padded(name: str, padded: bytes, width: int, true_len: int) -> None:
    if len(padded) != width:
        raise ValidationError(f"{name} must be exactly {width} bytes, got {len(padded)}")
    _check_u32(f"{name}_len", true_len)
    if true_len > width:
        raise ValidationError(f"{name}_len {true_len} exceeds field width {width}")
    if any(padded[true_len:]):
        raise ValidationError(f"{name} padding past {true_len} bytes must be zero")


@dataclass(frozen=True)
class HyliOutput:
    identity: bytes
    identity_len: int
    tx_hash: bytes
    tx_hash_len: int
    index: int
    blob_index: int
    tx_blob_count: int
    blob_contract_name: bytes
    blob_contract_name_len: int
    blob_capacity: int
    blob: bytes
    blob_len: int
    version: int = VERSION
    blob_number: int = BLOB_NUMBER
    initial_state: bytes = field(default_factory=_zero_state)
    next_state: bytes = field(default_factory=_zero_state)
    success: bool = True

    def __post_init__(self) -> None:
        if self.version != VERSION:
            raise ValidationError(f"HyliOutput.version must be {VERSION}")
        for name in ("initial_state", "next_state"):
            st = getattr(self, name)
            if len(st) != STATE_LEN or any(st):
                raise ValidationError(f"{name} must be {STATE_LEN} zero bytes")
        for name in ("index", "blob_number", "blob_index", "tx_blob_count", "blob_capacity"):
            _check_u32(name, getattr(self, name))
        if self.blob_capacity == 0:
            raise ValidationError("blob_capacity must be positive")

        _check_padded("identity", self.identity, IDENTITY_WIDTH, self.identity_len)
        _check_padded("tx_hash", self.tx_hash, TX_HASH_WIDTH, self.tx_hash_len)
        _check_padded("blob_contract_name", self.blob_contract_name, CONTRACT_NAME_WIDTH, self.blob_contract_name_len)
        _check_padded("blob", self.blob, self.blob_capacity, self.blob_len)

        if self.success is not True:
            raise ValidationError("HyliOutput.success must be true for a proof request")

    def contract_name(self) -> str:
        return self.blob_contract_name[: self.blob_contract_name_len].decode("utf-8")

    def unpadded_blob(self) -> bytes:
        return self.blob[: self.blob_len]

    def as_inputs(self) -> Dict[str, Any]:
        """
        Circuit input map in ABI order. Fixed-width strings stay fixed width
        (zero padding included), byte arrays become integer lists.
        """
        return {
            "version": self.version,
            "initial_state": list(self.initial_state),
            "initial_state_len": STATE_LEN,
            "next_state": list(self.next_state),
            "next_state_len": STATE_LEN,
            "identity": self.identity.decode("utf-8"),
            "identity_len": self.identity_len,
            "tx_hash": self.tx_hash.decode("utf-8"),
            "index": self.index,
            "blob_number": self.blob_number,
            "blob_index": self.blob_index,
            "blob_contract_name_len": self.blob_contract_name_len,
            "blob_contract_name": self.blob_contract_name.decode("utf-8"),
            "blob_capacity": self.blob_capacity,
            "blob_len": self.blob_len,
            "blob": list(self.blob),
            "tx_blob_count": self.tx_blob_count,
            "success": self.success,
        }


def assemble_hyli_output(
    *,
    blob: Blob,
    identity: str,
    tx_hash: str,
    blob_index: int,
    tx_blob_count: int,
    blob_capacity: int,
) -> HyliOutput:
    _check_u32("blob_capacity", blob_capacity)
    if blob_capacity == 0:
        raise ValidationError("blob_capacity must be positive")
    if len(blob.data) > blob_capacity:
        raise ValidationError(
            f"blob for {blob.contract_name} is {len(blob.data)} bytes, exceeds blob_capacity {blob_capacity}"
        )

    _check_u32("blob_index", blob_index)
    _check_u32("tx_blob_count", tx_blob_count)
    if blob_index >= tx_blob_count:
        raise ValidationError(f"blob_index {blob_index} out of range for tx_blob_count {tx_blob_count}")

    if not isinstance(tx_hash, str) or not _HEX_RE.match(tx_hash):
        raise ValidationError("tx_hash must be a non-empty hex string")

    id_bytes = string_to_bytes(identity)
    tx_bytes = string_to_bytes(tx_hash)
    name_bytes = string_to_bytes(blob.contract_name)

    return HyliOutput(
        identity=pad_bytes(id_bytes, IDENTITY_WIDTH, "identity"),
        identity_len=len(id_bytes),
        tx_hash=pad_bytes(tx_bytes, TX_HASH_WIDTH, "tx_hash"),
        tx_hash_len=len(tx_bytes),
        index=blob_index,
        blob_index=blob_index,
        tx_blob_count=tx_blob_count,
        blob_contract_name=pad_bytes(name_bytes, CONTRACT_NAME_WIDTH, "blob_contract_name"),
        blob_contract_name_len=len(name_bytes),
        blob_capacity=blob_capacity,
        blob=pad_bytes(blob.data, blob_capacity, "blob"),
        blob_len=len(blob.data),
    )

