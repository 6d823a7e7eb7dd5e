from __future__ import annotations

"""
check_jwt: prove possession of a provider-signed JWT binding an email to a
nonce, without revealing the token.

Blob: poseidon2(email) || ":" || nonce[16] || ":" || reversed(RSA modulus).
The circuit receives the HyliOutput fields flattened at top level (plus
tx_hash_len) alongside the JWT inputs from jwt_inputs.generate_jwt_inputs.
"""

from typing import Any, Dict, Mapping, Optional, Tuple, Union

from hyli_noir.backend import Poseidon2Hasher, ProofBackend
from hyli_noir.blob import JWT_CONTRACT_NAME, Blob, build_jwt_blob
from hyli_noir.circuits import CircuitArtifact, check_blob_len, circuit_blob_capacity, get_spec
from hyli_noir.codec import FIELD_MODULUS, bytes_to_bigint, string_to_bytes
from hyli_noir.errors import ValidationError
from hyli_noir.hyli_output import HyliOutput, assemble_hyli_output
from hyli_noir.jwt_inputs import (
    DEFAULT_MAX_SIGNED_DATA_LENGTH,
    DEFAULT_PRECOMPUTE_KEYS,
    JwtClaims,
    extract_jwt_claims,
    generate_jwt_inputs,
    jwk_pubkey_modulus,
    select_jwk,
)
from hyli_noir.node_client import LedgerClient
from hyli_noir.pipeline import ProofPipeline, ProofTransaction
from hyli_noir import registrar


CONTRACT_NAME = JWT_CONTRACT_NAME
BLOB_ABI_PATH = ("blob",)

__all__ = [
    "CONTRACT_NAME",
    "JwtClaims",
    "build_blob",
    "build_blob_from_jwt",
    "build_proof_transaction",
    "extract_jwt_claims",
    "generate_prover_data",
    "jwk_pubkey_modulus",
    "poseidon_hash",
    "register_contract",
]


async def poseidon_hash(text: str, hasher: Poseidon2Hasher) -> int:
    value = bytes_to_bigint(string_to_bytes(text))
    if value >= FIELD_MODULUS:
        raise ValidationError(f"{len(string_to_bytes(text))}-byte string does not fit in one field element")
    return int(await hasher.poseidon2([value]))


def build_blob(mail_hash: Union[bytes, int, str], nonce: str, pubkey: str) -> Blob:
    return build_jwt_blob(mail_hash, nonce, pubkey, contract_name=CONTRACT_NAME)


async def build_blob_from_jwt(id_token: str, jwks: Any, hasher: Poseidon2Hasher) -> Blob:
    """Claims -> signing key by kid -> Poseidon2(email) -> blob."""
    claims = extract_jwt_claims(id_token)
    jwk = select_jwk(jwks, claims.kid)
    mail_hash = await poseidon_hash(claims.email, hasher)
    return build_blob(mail_hash, claims.nonce, jwk["n"])


def generate_prover_data(
    *,
    circuit: CircuitArtifact,
    identity: str,
    stored_hash: bytes,
    tx_hash: str,
    blob_index: int,
    tx_blob_count: int,
    registry: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Tuple[HyliOutput, Dict[str, Any]]:
    spec = get_spec(CONTRACT_NAME, registry)
    capacity = circuit_blob_capacity(circuit, CONTRACT_NAME, spec, BLOB_ABI_PATH)
    check_blob_len(CONTRACT_NAME, spec, stored_hash)

    record = assemble_hyli_output(
        blob=Blob(contract_name=CONTRACT_NAME, data=stored_hash),
        identity=identity,
        tx_hash=tx_hash,
        blob_index=blob_index,
        tx_blob_count=tx_blob_count,
        blob_capacity=capacity,
    )
    inputs = record.as_inputs()
    inputs["tx_hash_len"] = record.tx_hash_len
    return record, inputs


async def build_proof_transaction(
    *,
    identity: str,
    stored_hash: bytes,
    tx_hash: str,
    blob_index: int,
    tx_blob_count: int,
    id_token: str,
    jwt_pubkey: Mapping[str, Any],
    circuit: CircuitArtifact,
    pipeline: ProofPipeline,
    registry: Optional[Dict[str, Dict[str, Any]]] = None,
    max_signed_data_length: int = DEFAULT_MAX_SIGNED_DATA_LENGTH,
) -> ProofTransaction:
    if not id_token or not jwt_pubkey:
        raise ValidationError("idToken and jwtPubkey are required")

    jwt_inputs = generate_jwt_inputs(
        id_token,
        dict(jwt_pubkey),
        precompute_till_keys=DEFAULT_PRECOMPUTE_KEYS,
        max_signed_data_length=max_signed_data_length,
    )
    record, inputs = generate_prover_data(
        circuit=circuit,
        identity=identity,
        stored_hash=stored_hash,
        tx_hash=tx_hash,
        blob_index=blob_index,
        tx_blob_count=tx_blob_count,
        registry=registry,
    )
    inputs.update(jwt_inputs.as_inputs())
    return await pipeline.prove(circuit=circuit, record=record, inputs=inputs)


async def register_contract(node: LedgerClient, circuit: CircuitArtifact, backend: ProofBackend) -> bool:
    return await registrar.register_contract(node, circuit, backend, CONTRACT_NAME)
