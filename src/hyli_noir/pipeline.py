from __future__ import annotations

"""
Proof pipeline.

  inputs --(CircuitExecutor)--> witness --(ProofBackend)--> (proof, public inputs)

The on-chain proof is the public inputs, each as a 32-byte big-endian word,
followed by the raw backend proof:

    proof_tx.proof = word(pi[0]) || word(pi[1]) || ... || raw_proof

This order is part of the verifier contract. split_proof() is the inverse.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union
import logging
import time

from hyli_noir.backend import BackendProof, CircuitExecutor, ProofBackend
from hyli_noir.circuits import CircuitArtifact
from hyli_noir.codec import FIELD_BYTES, bytes32_to_field_hex, flatten_fields_as_array
from hyli_noir.errors import HyliNoirError, ProofGenerationError, ValidationError, WitnessError
from hyli_noir.hyli_output import HyliOutput


logger = logging.getLogger(__name__)

VERIFIER = "noir"


@dataclass(frozen=True)
class ProofTransaction:
    contract_name: str
    program_id: bytes
    proof: bytes
    verifier: str = VERIFIER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_name": self.contract_name,
            "program_id": list(self.program_id),
            "verifier": self.verifier,
            "proof": list(self.proof),
        }


def reconstruct_proof(public_inputs: Sequence[Union[str, int]], raw_proof: bytes) -> bytes:
    return flatten_fields_as_array(public_inputs) + bytes(raw_proof)


def split_proof(proof: bytes, num_public_inputs: int) -> Tuple[List[str], bytes]:
    if num_public_inputs < 0:
        raise ValidationError("num_public_inputs must be non-negative")
    cut = num_public_inputs * FIELD_BYTES
    if len(proof) < cut:
        raise ValidationError(f"proof is {len(proof)} bytes, shorter than {num_public_inputs} public inputs")
    words = [bytes32_to_field_hex(proof[i: i + FIELD_BYTES]) for i in range(0, cut, FIELD_BYTES)]
    return words, bytes(proof[cut:])


def _carried_record(inputs: Mapping[str, Any]) -> Mapping[str, Any]:
    nested = inputs.get("hyli_output")
    return nested if isinstance(nested, Mapping) else inputs


def check_inputs_carry_record(record: HyliOutput, inputs: Mapping[str, Any]) -> None:
    """
    The record must appear in inputs, either nested under "hyli_output" or
    flattened at top level, with every field equal.
    """
    carried = _carried_record(inputs)
    mismatched = [k for k, v in record.as_inputs().items() if carried.get(k) != v]
    if mismatched:
        raise ValidationError(f"circuit inputs do not carry the HyliOutput record (fields: {', '.join(mismatched)})")


@dataclass(frozen=True)
class ProofPipeline:
    executor: CircuitExecutor
    backend: ProofBackend

    async def _verification_key(self, circuit: CircuitArtifact) -> bytes:
        try:
            return await self.backend.verification_key(circuit)
        except (HyliNoirError, NotImplementedError):
            raise
        except Exception as e:
            raise ProofGenerationError(f"verification key for {circuit.name} failed: {e}") from e

    async def _execute(self, circuit: CircuitArtifact, inputs: Mapping[str, Any]) -> bytes:
        try:
            return await self.executor.execute(circuit, inputs)
        except (HyliNoirError, NotImplementedError):
            raise
        except Exception as e:
            raise WitnessError(f"circuit {circuit.name} execution failed: {e}") from e

    async def _prove(self, circuit: CircuitArtifact, witness: bytes) -> BackendProof:
        try:
            return await self.backend.prove(circuit, witness)
        except (HyliNoirError, NotImplementedError):
            raise
        except Exception as e:
            raise ProofGenerationError(f"proof generation for {circuit.name} failed: {e}") from e

    async def prove(
        self,
        *,
        circuit: CircuitArtifact,
        record: HyliOutput,
        inputs: Mapping[str, Any],
    ) -> ProofTransaction:
        """
        inputs is the complete circuit input map (record plus private
        inputs, laid out as the circuit's ABI expects).
        """
        check_inputs_carry_record(record, inputs)
        contract_name = record.contract_name()
        vk = await self._verification_key(circuit)

        start = time.perf_counter()
        witness = await self._execute(circuit, inputs)
        result = await self._prove(circuit, witness)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        try:
            proof = reconstruct_proof(result.public_inputs, result.proof)
        except ValidationError as e:
            raise ProofGenerationError(f"backend returned malformed public inputs: {e}") from e

        logger.info("Proof generated for %s in %.0fms", contract_name, elapsed_ms)
        return ProofTransaction(contract_name=contract_name, program_id=bytes(vk), proof=proof)
