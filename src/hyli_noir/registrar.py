from __future__ import annotations

"""
Idempotent contract registration.

Registration happens only when the node reports the contract as not found;
any other lookup failure propagates. Concurrent callers may both register;
the node treats duplicate registrations as idempotent.
"""

import logging

from hyli_noir.backend import ProofBackend
from hyli_noir.circuits import CircuitArtifact
from hyli_noir.errors import NotFoundError
from hyli_noir.node_client import LedgerClient, RegisterContract


logger = logging.getLogger(__name__)


async def register_contract(
    node: LedgerClient,
    circuit: CircuitArtifact,
    backend: ProofBackend,
    contract_name: str,
) -> bool:
    """Returns True when a registration was sent."""
    try:
        await node.get_contract(contract_name)
    except NotFoundError:
        vk = await backend.verification_key(circuit)
        logger.info("registering contract %s (vk %d bytes)", contract_name, len(vk))
        await node.register_contract(RegisterContract(contract_name=contract_name, program_id=bytes(vk)))
        return True

    logger.info("contract %s already registered", contract_name)
    return False
