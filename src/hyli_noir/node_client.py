from __future__ import annotations

"""
Hyli node client.

Only a 404 on contract lookup is translated (NotFoundError); every other
HTTP or transport error propagates as raised by httpx.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence
import logging

import httpx

from hyli_noir.blob import Blob
from hyli_noir.config import Settings
from hyli_noir.errors import NotFoundError
from hyli_noir.pipeline import VERIFIER, ProofTransaction


logger = logging.getLogger(__name__)


def _zero_state() -> bytes:
    return b"\x00" * 4


@dataclass(frozen=True)
class RegisterContract:
    contract_name: str
    program_id: bytes
    state_commitment: bytes = field(default_factory=_zero_state)
    verifier: str = VERIFIER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verifier": self.verifier,
            "program_id": list(self.program_id),
            "state_commitment": list(self.state_commitment),
            "contract_name": self.contract_name,
        }


class LedgerClient(Protocol):
    async def get_contract(self, contract_name: str) -> Any:
        ...

    async def register_contract(self, descriptor: RegisterContract) -> Any:
        ...


class NodeApiHttpClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or Settings.from_env()
        self.base_url = (base_url or settings.node_url).rstrip("/") + "/"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.node_timeout_secs)

    def _url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    @staticmethod
    def _body(r: httpx.Response) -> Any:
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            return r.text

    async def get_contract(self, contract_name: str) -> Any:
        r = await self._client.get(self._url(f"v1/contract/{contract_name}"))
        if r.status_code == 404:
            raise NotFoundError(f"contract {contract_name} not found")
        r.raise_for_status()
        return self._body(r)

    async def register_contract(self, descriptor: RegisterContract) -> Any:
        r = await self._client.post(self._url("v1/contract/register_contract"), json=descriptor.to_dict())
        r.raise_for_status()
        return self._body(r)

    async def send_blob_tx(self, identity: str, blobs: Sequence[Blob]) -> Any:
        r = await self._client.post(
            self._url("v1/tx/send/blob"),
            json={"identity": identity, "blobs": [b.to_dict() for b in blobs]},
        )
        r.raise_for_status()
        return self._body(r)

    async def send_proof_tx(self, proof_tx: ProofTransaction) -> Any:
        r = await self._client.post(self._url("v1/tx/send/proof"), json=proof_tx.to_dict())
        r.raise_for_status()
        return self._body(r)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "NodeApiHttpClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
