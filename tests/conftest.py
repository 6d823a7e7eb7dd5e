from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Mapping, Sequence

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from hyli_noir.backend import BackendProof
from hyli_noir.circuits import CircuitArtifact
from hyli_noir.errors import NotFoundError


def b64url(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def int_b64url(n: int) -> str:
    return b64url(n.to_bytes((n.bit_length() + 7) // 8, "big"))


class FakeExecutor:
    def __init__(self, witness: bytes = b"witness-bytes") -> None:
        self.witness = witness
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, circuit: CircuitArtifact, inputs: Mapping[str, Any]) -> bytes:
        self.calls.append(dict(inputs))
        return self.witness


class FakeBackend:
    def __init__(
        self,
        proof: bytes = b"\xaa" * 16,
        public_inputs: Sequence[str] = ("0x01", "0x02"),
        vk: bytes = b"vk-bytes",
    ) -> None:
        self.proof = proof
        self.public_inputs = list(public_inputs)
        self.vk = vk
        self.witnesses: List[bytes] = []
        self.vk_calls = 0

    async def prove(self, circuit: CircuitArtifact, witness: bytes) -> BackendProof:
        self.witnesses.append(witness)
        return BackendProof(proof=self.proof, public_inputs=list(self.public_inputs))

    async def verification_key(self, circuit: CircuitArtifact) -> bytes:
        self.vk_calls += 1
        return self.vk


class FakeHasher:
    def __init__(self, result: int = 0x1234) -> None:
        self.result = result
        self.calls: List[List[int]] = []

    async def poseidon2(self, inputs: Sequence[int]) -> int:
        self.calls.append(list(inputs))
        return self.result


class FakeNode:
    """get_contract answers from a queue: None means 'not found'."""

    def __init__(self, answers: Sequence[Any]) -> None:
        self.answers = list(answers)
        self.registered: List[Any] = []

    async def get_contract(self, contract_name: str) -> Any:
        ans = self.answers.pop(0)
        if ans is None:
            raise NotFoundError(contract_name)
        if isinstance(ans, Exception):
            raise ans
        return ans

    async def register_contract(self, descriptor: Any) -> Any:
        self.registered.append(descriptor)
        return None


def u8_array(length: int) -> Dict[str, Any]:
    return {"kind": "array", "length": length, "type": {"kind": "integer", "sign": "unsigned", "width": 8}}


def _param(name: str, typ: Dict[str, Any], visibility: str = "private") -> Dict[str, Any]:
    return {"name": name, "type": typ, "visibility": visibility}


def secret_abi(blob_capacity: int = 32) -> Dict[str, Any]:
    hyli_output = {
        "kind": "struct",
        "path": "hyli_output::HyliOutput",
        "fields": [
            {"name": "version", "type": {"kind": "integer", "sign": "unsigned", "width": 32}},
            {"name": "identity", "type": {"kind": "string", "length": 256}},
            {"name": "blob", "type": u8_array(blob_capacity)},
            {"name": "blob_len", "type": {"kind": "integer", "sign": "unsigned", "width": 32}},
        ],
    }
    return {"parameters": [_param("hyli_output", hyli_output, "public"), _param("password", u8_array(32))]}


def jwt_abi(blob_capacity: int = 306) -> Dict[str, Any]:
    return {
        "parameters": [
            _param("version", {"kind": "integer", "sign": "unsigned", "width": 32}, "public"),
            _param("blob", u8_array(blob_capacity), "public"),
            _param("blob_len", {"kind": "integer", "sign": "unsigned", "width": 32}, "public"),
            _param("partial_data", {"kind": "struct", "path": "std::collections::bounded_vec::BoundedVec", "fields": []}),
        ]
    }


@pytest.fixture
def circuit() -> CircuitArtifact:
    return CircuitArtifact(name="check_secret", bytecode="H4sIAAAAAAAA", abi=secret_abi())


@pytest.fixture
def jwt_circuit() -> CircuitArtifact:
    return CircuitArtifact(name="check_jwt", bytecode="H4sIAAAAAAAA", abi=jwt_abi())


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def jwk(rsa_key) -> Dict[str, Any]:
    nums = rsa_key.public_key().public_numbers()
    return {"kty": "RSA", "kid": "test-kid", "alg": "RS256", "use": "sig", "n": int_b64url(nums.n), "e": int_b64url(nums.e)}


def make_jwt(key, payload: Dict[str, Any], kid: str = "test-kid") -> str:
    header = {"alg": "RS256", "kid": kid, "typ": "JWT"}
    h = b64url(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    p = b64url(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    sig = key.sign(f"{h}.{p}".encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return f"{h}.{p}.{b64url(sig)}"


@pytest.fixture(scope="session")
def id_token(rsa_key) -> str:
    return make_jwt(
        rsa_key,
        {
            "iss": "https://accounts.google.com",
            "aud": "hyli-test-client.apps.googleusercontent.com",
            "sub": "110169484474386276334",
            "iat": 1700000000,
            "exp": 1700003600,
            "email": "Alice@Example.com",
            "email_verified": True,
            "nonce": "AbC123",
        },
    )
