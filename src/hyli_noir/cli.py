from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from hyli_noir import check_jwt, check_secret
from hyli_noir.backend import get_backends_from_env
from hyli_noir.circuits import CircuitArtifact, load_circuit_artifact, load_registered_circuit, load_registry
from hyli_noir.config import Settings
from hyli_noir.errors import HyliNoirError, ValidationError
from hyli_noir.node_client import NodeApiHttpClient
from hyli_noir.pipeline import ProofPipeline


_REGISTRARS = {
    check_secret.CONTRACT_NAME: check_secret.register_contract,
    check_jwt.CONTRACT_NAME: check_jwt.register_contract,
}


def _load_circuit(name: str, artifact: str, registry_path: str) -> CircuitArtifact:
    if artifact:
        return load_circuit_artifact(Path(artifact), name=name)
    registry = load_registry(Path(registry_path) if registry_path else None)
    return load_registered_circuit(name, registry)


def _emit(obj: Any, out: str) -> None:
    text = json.dumps(obj, indent=2, sort_keys=True)
    if out:
        p = Path(out)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        print(f"Wrote: {p.resolve()}")
    else:
        print(text)


async def _prove_secret(args: argparse.Namespace, settings: Settings) -> int:
    circuit = _load_circuit(check_secret.CONTRACT_NAME, args.artifact, args.registry)
    executor, backend, _ = get_backends_from_env(settings)
    tx = await check_secret.build_proof_transaction(
        identity=args.identity,
        password=args.password,
        tx_hash=args.tx_hash,
        blob_index=args.blob_index,
        tx_blob_count=args.tx_blob_count,
        circuit=circuit,
        pipeline=ProofPipeline(executor=executor, backend=backend),
    )
    _emit(tx.to_dict(), args.out)
    return 0


async def _register(args: argparse.Namespace, settings: Settings) -> int:
    if args.circuit not in _REGISTRARS:
        raise ValidationError(f"unknown circuit: {args.circuit}")
    circuit = _load_circuit(args.circuit, args.artifact, args.registry)
    _, backend, _ = get_backends_from_env(settings)
    async with NodeApiHttpClient(args.node_url or None, settings=settings) as node:
        sent = await _REGISTRARS[args.circuit](node, circuit, backend)
    print("registered" if sent else "already registered")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="hyli-noir", description="Build Hyli blobs and Noir proof transactions.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("identity-hash", help="Print the check_secret stored hash (hex)")
    p.add_argument("identity")
    p.add_argument("password")

    p = sub.add_parser("secret-blob", help="Print the check_secret blob as JSON")
    p.add_argument("identity")
    p.add_argument("password")

    p = sub.add_parser("prove-secret", help="Prove a check_secret blob and write the proof transaction JSON")
    p.add_argument("--identity", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--tx-hash", required=True, help="Hex blob transaction hash")
    p.add_argument("--blob-index", type=int, default=0)
    p.add_argument("--tx-blob-count", type=int, default=1)
    p.add_argument("--artifact", default="", help="Compiled circuit JSON (defaults to the registry entry)")
    p.add_argument("--registry", default="", help="Optional registry overlay (JSON or YAML)")
    p.add_argument("--out", default="", help="Output JSON path (stdout when omitted)")

    p = sub.add_parser("register", help="Register a circuit's contract on the node if missing")
    p.add_argument("--circuit", required=True, choices=sorted(_REGISTRARS))
    p.add_argument("--artifact", default="")
    p.add_argument("--registry", default="")
    p.add_argument("--node-url", default="", help="Overrides HYLI_NODE_URL")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    settings = Settings.from_env()
    try:
        if args.cmd == "identity-hash":
            print(check_secret.identity_hash(args.identity, args.password))
            return 0
        if args.cmd == "secret-blob":
            _emit(check_secret.build_blob(args.identity, args.password).to_dict(), "")
            return 0
        if args.cmd == "prove-secret":
            return asyncio.run(_prove_secret(args, settings))
        return asyncio.run(_register(args, settings))
    except ValidationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except (HyliNoirError, NotImplementedError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
