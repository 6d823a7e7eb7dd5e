from __future__ import annotations

"""
check_secret: prove knowledge of a password whose salted hash is public.

stored hash = sha256(identity || ":" || sha256(password)), 32 bytes, which is
both the blob and the circuit's blob field. The circuit receives the
HyliOutput record as a nested struct plus the hashed password as witness.
"""

from typing import Any, Dict, Optional, Tuple

from hyli_noir.backend import ProofBackend
from hyli_noir.blob import SECRET_CONTRACT_NAME, Blob, build_secret_blob, hash_password, identity_hash, secret_commitment
from hyli_noir.circuits import CircuitArtifact, check_blob_len, circuit_blob_capacity, get_spec
from hyli_noir.errors import ValidationError
from hyli_noir.hyli_output import HyliOutput, assemble_hyli_output
from hyli_noir.node_client import LedgerClient
from hyli_noir.pipeline import ProofPipeline, ProofTransaction
from hyli_noir import registrar


CONTRACT_NAME = SECRET_CONTRACT_NAME
PASSWORD_HASH_LEN = 32
BLOB_ABI_PATH = ("hyli_output", "blob")

__all__ = [
    "CONTRACT_NAME",
    "build_blob",
    "build_proof_transaction",
    "generate_prover_data",
    "hash_password",
    "identity_hash",
    "register_contract",
]


def build_blob(identity: str, password: str) -> Blob:
    return build_secret_blob(identity, password, contract_name=CONTRACT_NAME)


def generate_prover_data(
    *,
    circuit: CircuitArtifact,
    identity: str,
    password_hash: bytes,
    stored_hash: bytes,
    tx_hash: str,
    blob_index: int,
    tx_blob_count: int,
    registry: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Tuple[HyliOutput, Dict[str, Any]]:
    if len(password_hash) != PASSWORD_HASH_LEN:
        raise ValidationError(f"password hash must be {PASSWORD_HASH_LEN} bytes, got {len(password_hash)}")

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
    return record, {"hyli_output": record.as_inputs(), "password": list(password_hash)}


async def build_proof_transaction(
    *,
    identity: str,
    password: str,
    tx_hash: str,
    blob_index: int,
    tx_blob_count: int,
    circuit: CircuitArtifact,
    pipeline: ProofPipeline,
    registry: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ProofTransaction:
    record, inputs = generate_prover_data(
        circuit=circuit,
        identity=identity,
        password_hash=hash_password(password),
        stored_hash=secret_commitment(identity, password),
        tx_hash=tx_hash,
        blob_index=blob_index,
        tx_blob_count=tx_blob_count,
        registry=registry,
    )
    return await pipeline.prove(circuit=circuit, record=record, inputs=inputs)


async def register_contract(node: LedgerClient, circuit: CircuitArtifact, backend: ProofBackend) -> bool:
    return await registrar.register_contract(node, circuit, backend, CONTRACT_NAME)
