from __future__ import annotations

"""
Byte codec helpers shared by the blob builders, the record assembler and the
proof reconstruction.

All functions are pure. Only base64url decoding and the fixed-width helpers
have a failure path; everything else is total.
"""

from typing import Iterable, List, Union
import base64
import binascii
import hashlib

from hyli_noir.errors import DecodeError, ValidationError


# BN254 scalar field modulus (the Noir/Barretenberg native field).
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FIELD_BYTES = 32


def string_to_bytes(s: str) -> bytes:
    return s.encode("utf-8")


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def encode_to_hex(data: bytes) -> str:
    return bytes(data).hex()


def b64url_to_bytes(s: str) -> bytes:
    """
    Decode base64url (RFC 4648 §5). Standard-alphabet input is accepted too,
    and missing '=' padding is restored before decoding.
    """
    if not isinstance(s, str):
        raise DecodeError("base64url input must be a string")
    t = s.replace("-", "+").replace("_", "/")
    if len(t) % 4 == 1:
        raise DecodeError(f"invalid base64url length: {len(s)}")
    t += "=" * ((4 - len(t) % 4) % 4)
    try:
        return base64.b64decode(t.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise DecodeError(f"malformed base64url: {e}") from e


def bytes_to_bigint(data: bytes) -> int:
    """Big-endian unsigned integer."""
    return int.from_bytes(bytes(data), "big")


def pad_bytes(data: bytes, width: int, what: str = "value") -> bytes:
    """Zero-pad on the right to width. Never truncates."""
    data = bytes(data)
    if len(data) > width:
        raise ValidationError(f"{what} is {len(data)} bytes, exceeds its {width}-byte field")
    return data + b"\x00" * (width - len(data))


def parse_field(value: Union[str, int]) -> int:
    """
    Accept a field element as int, 0x-prefixed hex or decimal string.
    """
    if isinstance(value, bool):
        raise ValidationError("field element must be int or str, not bool")
    if isinstance(value, int):
        n = value
    elif isinstance(value, str):
        v = value.strip()
        try:
            if v[:2].lower() == "0x":
                n = int(v[2:], 16)
            else:
                n = int(v, 10)
        except ValueError as e:
            raise ValidationError(f"not a field element: {value!r}") from e
    else:
        raise ValidationError(f"field element must be int or str, got {type(value).__name__}")
    if n < 0:
        raise ValidationError(f"field element must be non-negative: {value!r}")
    return n


def field_to_bytes32(value: Union[str, int]) -> bytes:
    n = parse_field(value)
    if n.bit_length() > FIELD_BYTES * 8:
        raise ValidationError(f"field element does not fit in {FIELD_BYTES} bytes: {value!r}")
    return n.to_bytes(FIELD_BYTES, "big")


def bytes32_to_field_hex(word: bytes) -> str:
    if len(word) != FIELD_BYTES:
        raise ValidationError(f"field word must be {FIELD_BYTES} bytes, got {len(word)}")
    return "0x" + bytes(word).hex()


def flatten_fields_as_array(fields: Iterable[Union[str, int]]) -> bytes:
    return b"".join(field_to_bytes32(f) for f in fields)


def split_bigint_to_limbs(value: int, limb_bits: int, num_limbs: int) -> List[int]:
    """Little-endian limbs (least significant first)."""
    if value < 0:
        raise ValidationError("cannot split a negative integer into limbs")
    if value.bit_length() > limb_bits * num_limbs:
        raise ValidationError(f"integer exceeds {num_limbs} limbs of {limb_bits} bits")
    mask = (1 << limb_bits) - 1
    return [(value >> (i * limb_bits)) & mask for i in range(num_limbs)]
