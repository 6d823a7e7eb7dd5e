from hyli_noir.backend import (
    BackendProof,
    BarretenbergBackend,
    CircuitExecutor,
    NargoExecutor,
    NargoPoseidon2Hasher,
    Poseidon2Hasher,
    ProofBackend,
    get_backends_from_env,
)
from hyli_noir.blob import Blob
from hyli_noir.circuits import CircuitArtifact, load_circuit_artifact, load_registry
from hyli_noir.config import Settings
from hyli_noir.errors import (
    DecodeError,
    HyliNoirError,
    NotFoundError,
    ProofGenerationError,
    ValidationError,
    WitnessError,
)
from hyli_noir.hyli_output import HyliOutput, assemble_hyli_output
from hyli_noir.node_client import NodeApiHttpClient, RegisterContract
from hyli_noir.pipeline import ProofPipeline, ProofTransaction, split_proof
from hyli_noir.registrar import register_contract

__version__ = "0.3.0"

__all__ = [
    "BackendProof",
    "BarretenbergBackend",
    "Blob",
    "CircuitArtifact",
    "CircuitExecutor",
    "DecodeError",
    "HyliNoirError",
    "HyliOutput",
    "NargoExecutor",
    "NargoPoseidon2Hasher",
    "NodeApiHttpClient",
    "NotFoundError",
    "Poseidon2Hasher",
    "ProofBackend",
    "ProofGenerationError",
    "ProofPipeline",
    "ProofTransaction",
    "RegisterContract",
    "Settings",
    "ValidationError",
    "WitnessError",
    "assemble_hyli_output",
    "get_backends_from_env",
    "load_circuit_artifact",
    "load_registry",
    "register_contract",
    "split_proof",
    "__version__",
]
