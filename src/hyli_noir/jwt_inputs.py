from __future__ import annotations

"""
JWT circuit inputs.

The JWT circuit verifies an RS256 signature over "header.payload" and reads
the email/nonce claims from the base64 payload. To keep the circuit small the
SHA-256 over the signed data is precomputed here up to the last 64-byte block
boundary before the first claim of interest; the circuit resumes hashing from
that intermediate state.

RSA values are passed as 18 little-endian limbs of 120 bits, together with
the Barrett reduction parameter floor(2^(2*2048+4) / n).

Signature validity is not checked here; the circuit does that.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence
import json
import struct

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicNumbers
from jsonschema import Draft202012Validator

from hyli_noir.codec import b64url_to_bytes, bytes_to_bigint, split_bigint_to_limbs
from hyli_noir.errors import ValidationError


RSA_BITS = 2048
LIMB_BITS = 120
NUM_LIMBS = 18

DEFAULT_PRECOMPUTE_KEYS = ("email", "email_verified", "nonce")
DEFAULT_MAX_SIGNED_DATA_LENGTH = 640

SHA256_BLOCK = 64


JWKS_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["keys"],
    "properties": {
        "keys": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["kty"],
                "properties": {
                    "kty": {"type": "string"},
                    "kid": {"type": "string"},
                    "n": {"type": "string", "minLength": 1},
                    "e": {"type": "string", "minLength": 1},
                },
            },
        }
    },
}

_jwks_validator = Draft202012Validator(JWKS_SCHEMA)


@dataclass(frozen=True)
class JwtClaims:
    email: str
    nonce: str
    kid: str


def _split_jwt(jwt: str) -> List[str]:
    if not isinstance(jwt, str):
        raise ValidationError("JWT must be a string")
    parts = jwt.strip().split(".")
    if len(parts) != 3 or not all(parts[:2]):
        raise ValidationError("JWT must have three dot-separated segments")
    return parts


def _decode_segment(seg: str, what: str) -> Dict[str, Any]:
    raw = b64url_to_bytes(seg)
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"JWT {what} is not JSON") from e
    if not isinstance(obj, dict):
        raise ValidationError(f"JWT {what} must be a JSON object")
    return obj


def extract_jwt_claims(jwt: str) -> JwtClaims:
    """
    Reads email and nonce (lowercased) from the payload and kid from the header.
    """
    header_b64, payload_b64, _ = _split_jwt(jwt)
    header = _decode_segment(header_b64, "header")
    payload = _decode_segment(payload_b64, "payload")

    missing = [k for k in ("email", "nonce") if not isinstance(payload.get(k), str)]
    if not isinstance(header.get("kid"), str):
        missing.append("kid")
    if missing:
        raise ValidationError(f"JWT missing required claims: {', '.join(missing)}")

    return JwtClaims(email=payload["email"].lower(), nonce=payload["nonce"].lower(), kid=header["kid"])


def select_jwk(jwks: Any, kid: str) -> Dict[str, Any]:
    """
    Accepts a JWKS document ({"keys": [...]}), a bare list of keys, or a single key.
    """
    if isinstance(jwks, list):
        jwks = {"keys": jwks}
    elif isinstance(jwks, dict) and "keys" not in jwks and "kty" in jwks:
        jwks = {"keys": [jwks]}

    errs = sorted(_jwks_validator.iter_errors(jwks), key=lambda e: e.path)
    if errs:
        e0 = errs[0]
        loc = ".".join(str(x) for x in e0.path) if e0.path else "<root>"
        raise ValidationError(f"JWKS schema violation at {loc}: {e0.message}")

    for k in jwks["keys"]:
        if k.get("kid") == kid:
            if k.get("kty") != "RSA" or "n" not in k or "e" not in k:
                raise ValidationError(f"signing key {kid} is not an RSA key")
            return k
    raise ValidationError(f"no signing key matches kid {kid!r}")


def jwk_pubkey_modulus(jwk: Dict[str, Any]) -> int:
    """Import an RSA JWK and return its modulus."""
    if jwk.get("kty") != "RSA":
        raise ValidationError("JWK must have kty RSA")
    try:
        n = bytes_to_bigint(b64url_to_bytes(str(jwk["n"])))
        e = bytes_to_bigint(b64url_to_bytes(str(jwk["e"])))
    except KeyError as ex:
        raise ValidationError(f"JWK missing {ex.args[0]}") from ex
    try:
        key = RSAPublicNumbers(e=e, n=n).public_key()
    except ValueError as ex:
        raise ValidationError(f"invalid RSA JWK: {ex}") from ex
    return key.public_numbers().n


# ---------- SHA-256 intermediate state ----------

_K = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208, 0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)

SHA256_IV = (0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A, 0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19)

_MASK32 = 0xFFFFFFFF


def _rotr(x: int, n: int) -> int:
    return ((x >> n) | (x << (32 - n))) & _MASK32


def _compress(state: Sequence[int], block: bytes) -> List[int]:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & _MASK32)

    a, b, c, d, e, f, g, h = state
    for i in range(64):
        s1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        ch = (e & f) ^ (~e & g)
        t1 = (h + s1 + ch + _K[i] + w[i]) & _MASK32
        s0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        maj = (a & b) ^ (a & c) ^ (b & c)
        t2 = (s0 + maj) & _MASK32
        h, g, f, e, d, c, b, a = g, f, e, (d + t1) & _MASK32, c, b, a, (t1 + t2) & _MASK32

    return [(x + y) & _MASK32 for x, y in zip(state, (a, b, c, d, e, f, g, h))]


def sha256_partial_state(data: bytes) -> List[int]:
    """
    SHA-256 state words after absorbing data, without final padding.
    len(data) must be a multiple of 64.
    """
    if len(data) % SHA256_BLOCK:
        raise ValidationError(f"partial SHA-256 input must be a multiple of {SHA256_BLOCK} bytes")
    state = list(SHA256_IV)
    for off in range(0, len(data), SHA256_BLOCK):
        state = _compress(state, data[off: off + SHA256_BLOCK])
    return state


# ---------- circuit inputs ----------

@dataclass(frozen=True)
class JwtCircuitInputs:
    partial_data: bytes
    partial_data_len: int
    partial_hash: List[int]
    full_data_length: int
    base64_decode_offset: int
    pubkey_modulus_limbs: List[int]
    redc_params_limbs: List[int]
    signature_limbs: List[int]

    def as_inputs(self) -> Dict[str, Any]:
        return {
            "partial_data": {"storage": list(self.partial_data), "len": self.partial_data_len},
            "partial_hash": list(self.partial_hash),
            "full_data_length": self.full_data_length,
            "base64_decode_offset": self.base64_decode_offset,
            "jwt_pubkey_modulus_limbs": [str(x) for x in self.pubkey_modulus_limbs],
            "jwt_pubkey_redc_params_limbs": [str(x) for x in self.redc_params_limbs],
            "jwt_signature_limbs": [str(x) for x in self.signature_limbs],
        }


def rsa_limbs(value: int) -> List[int]:
    return split_bigint_to_limbs(value, LIMB_BITS, NUM_LIMBS)


def redc_param(modulus: int) -> int:
    return (1 << (2 * RSA_BITS + 4)) // modulus


def generate_jwt_inputs(
    jwt: str,
    jwk: Dict[str, Any],
    *,
    precompute_till_keys: Optional[Iterable[str]] = DEFAULT_PRECOMPUTE_KEYS,
    max_signed_data_length: int = DEFAULT_MAX_SIGNED_DATA_LENGTH,
) -> JwtCircuitInputs:
    header_b64, payload_b64, sig_b64 = _split_jwt(jwt)
    signed = f"{header_b64}.{payload_b64}".encode("ascii")

    modulus = jwk_pubkey_modulus(jwk)
    if modulus.bit_length() != RSA_BITS:
        raise ValidationError(f"only RSA-{RSA_BITS} keys are supported (got {modulus.bit_length()} bits)")
    signature = bytes_to_bigint(b64url_to_bytes(sig_b64))
    if signature >= modulus:
        raise ValidationError("JWT signature is not smaller than the RSA modulus")

    keys = list(precompute_till_keys or ())
    if keys:
        payload = b64url_to_bytes(payload_b64)
        found = [i for i in (payload.find(f'"{k}":'.encode("utf-8")) for k in keys) if i >= 0]
        if not found:
            raise ValidationError(f"none of the claims {keys} found in JWT payload")
        first_in_b64 = (min(found) * 4) // 3
        slice_start = len(header_b64) + first_in_b64 + 1
        cutoff = (slice_start // SHA256_BLOCK) * SHA256_BLOCK
    else:
        cutoff = 0

    remaining = signed[cutoff:]
    if len(remaining) > max_signed_data_length:
        raise ValidationError(
            f"signed JWT data after precompute is {len(remaining)} bytes, exceeds {max_signed_data_length}"
        )

    payload_chars_hashed = cutoff - (len(header_b64) + 1)
    if payload_chars_hashed < 0:
        # cutoff falls inside the header: decoding starts where the payload does
        offset = -payload_chars_hashed
    else:
        offset = 4 - (payload_chars_hashed % 4)

    return JwtCircuitInputs(
        partial_data=remaining + b"\x00" * (max_signed_data_length - len(remaining)),
        partial_data_len=len(remaining),
        partial_hash=sha256_partial_state(signed[:cutoff]),
        full_data_length=len(signed),
        base64_decode_offset=offset,
        pubkey_modulus_limbs=rsa_limbs(modulus),
        redc_params_limbs=rsa_limbs(redc_param(modulus)),
        signature_limbs=rsa_limbs(signature),
    )
