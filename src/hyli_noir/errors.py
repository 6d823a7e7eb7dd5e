from __future__ import annotations

"""
Error taxonomy.

- ValidationError: caller-supplied data violates a length/format invariant.
  Deterministic, never retried.
- WitnessError: the circuit rejected the assembled inputs.
- ProofGenerationError: the proving backend failed. Fatal, not retried.
- NotFoundError: the ledger has no such contract. The only expected outcome,
  used to gate registration.
"""


class HyliNoirError(Exception):
    pass


class ValidationError(HyliNoirError, ValueError):
    pass


class DecodeError(ValidationError):
    pass


class WitnessError(HyliNoirError, RuntimeError):
    pass


class ProofGenerationError(HyliNoirError, RuntimeError):
    pass


class NotFoundError(HyliNoirError, LookupError):
    pass
