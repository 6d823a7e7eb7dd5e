from __future__ import annotations

"""
Compiled circuit artifacts and the circuit registry.

Artifacts are the JSON files written by `nargo compile` (target/<name>.json).
They are always passed explicitly to the proving flows; there is no
process-wide default circuit.

Registry entries are keyed by contract name:
1) built-in DEFAULT_REGISTRY (blob layout constants per circuit variant)
2) optional overlay file (json or yaml), by argument or
   env HYLI_NOIR_CIRCUIT_REGISTRY_PATH

An overlay entry may add artifact_path / program_dir (relative paths resolve
against the overlay file's directory) and artifact_sha256 to pin the artifact.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence
import copy
import hashlib
import json

import yaml
from jsonschema import Draft202012Validator

from hyli_noir.config import Settings
from hyli_noir.errors import ValidationError


ARTIFACT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["bytecode", "abi"],
    "properties": {
        "noir_version": {"type": "string"},
        "hash": {"type": ["string", "integer"]},
        "bytecode": {"type": "string", "minLength": 1},
        "abi": {
            "type": "object",
            "required": ["parameters"],
            "properties": {"parameters": {"type": "array"}},
        },
    },
}

_artifact_validator = Draft202012Validator(ARTIFACT_SCHEMA)


DEFAULT_REGISTRY: Dict[str, Dict[str, Any]] = {
    "check_secret": {
        "blob_capacity": 32,
        "blob_len": 32,
        "enabled": True,
        "artifact_path": None,
        "program_dir": None,
        "artifact_sha256": None,
    },
    "check_jwt": {
        "blob_capacity": 306,
        "blob_len": 306,
        "enabled": True,
        "artifact_path": None,
        "program_dir": None,
        "artifact_sha256": None,
    },
}


@dataclass(frozen=True)
class CircuitArtifact:
    name: str
    bytecode: str
    abi: Dict[str, Any]
    noir_version: Optional[str] = None
    path: Optional[Path] = None
    program_dir: Optional[Path] = None

    def parameter_names(self) -> list[str]:
        return [str(p.get("name")) for p in self.abi.get("parameters", []) if isinstance(p, dict)]

    def abi_type(self, path: Sequence[str]) -> Optional[Dict[str, Any]]:
        """
        ABI type of a parameter, following struct fields for nested paths,
        e.g. ("hyli_output", "blob"). None when the path does not exist.
        """
        entries: Any = self.abi.get("parameters", [])
        typ: Optional[Dict[str, Any]] = None
        for name in path:
            match = next((e for e in entries if isinstance(e, dict) and e.get("name") == name), None)
            if match is None or not isinstance(match.get("type"), dict):
                return None
            typ = match["type"]
            entries = typ.get("fields", []) if typ.get("kind") == "struct" else []
        return typ

    def array_length(self, path: Sequence[str]) -> Optional[int]:
        typ = self.abi_type(path)
        if not typ or typ.get("kind") != "array":
            return None
        n = typ.get("length")
        return n if isinstance(n, int) and not isinstance(n, bool) else None


def _sha256_hex(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def _read_doc(path: Path) -> Any:
    txt = path.read_text(encoding="utf-8-sig")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(txt)
        return json.loads(txt)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValidationError(f"cannot parse {path}: {e}") from e


def validate_artifact(obj: Any) -> None:
    errs = sorted(_artifact_validator.iter_errors(obj), key=lambda e: e.path)
    if errs:
        e0 = errs[0]
        loc = ".".join(str(x) for x in e0.path) if e0.path else "<root>"
        raise ValidationError(f"circuit artifact schema violation at {loc}: {e0.message}")


def circuit_from_dict(
    obj: Dict[str, Any],
    name: str,
    *,
    path: Optional[Path] = None,
    program_dir: Optional[Path] = None,
) -> CircuitArtifact:
    validate_artifact(obj)
    return CircuitArtifact(
        name=name,
        bytecode=obj["bytecode"],
        abi=obj["abi"],
        noir_version=obj.get("noir_version"),
        path=path,
        program_dir=program_dir,
    )


def load_circuit_artifact(
    path: Path,
    *,
    name: Optional[str] = None,
    program_dir: Optional[Path] = None,
    expected_sha256: Optional[str] = None,
) -> CircuitArtifact:
    """
    Load target/<name>.json. The program directory defaults to the parent of
    target/ (where Nargo.toml lives).
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"circuit artifact not found: {path}")
    raw = path.read_bytes()
    if expected_sha256 and _sha256_hex(raw) != str(expected_sha256):
        raise ValidationError(f"artifact_sha256 mismatch for {path} (pin violated)")
    try:
        obj = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"circuit artifact is not JSON: {path}") from e

    if program_dir is None and path.parent.name == "target":
        program_dir = path.parent.parent
    return circuit_from_dict(obj, name or path.stem, path=path.resolve(), program_dir=program_dir)


def load_registry(extra_path: Optional[Path] = None, settings: Optional[Settings] = None) -> Dict[str, Dict[str, Any]]:
    reg = copy.deepcopy(DEFAULT_REGISTRY)

    p = extra_path
    if p is None:
        p = (settings or Settings.from_env()).circuit_registry_path
    if p is None:
        return reg

    p = Path(p)
    if not p.exists():
        raise ValidationError(f"circuit registry not found: {p}")
    obj = _read_doc(p)
    if not isinstance(obj, dict):
        raise ValidationError(f"circuit registry must be a mapping: {p}")

    base = p.resolve().parent
    for k, v in obj.items():
        if not (isinstance(k, str) and isinstance(v, dict)):
            continue
        entry = dict(reg.get(k, {}))
        entry.update(v)
        for key in ("artifact_path", "program_dir"):
            if entry.get(key):
                pth = Path(str(entry[key]))
                entry[key] = pth if pth.is_absolute() else (base / pth).resolve()
        reg[k] = entry
    return reg


def get_spec(contract_name: str, registry: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Any]:
    if registry is None:
        registry = load_registry()
    spec = registry.get(contract_name)
    if not spec:
        raise ValidationError(f"Unknown circuit: {contract_name}")
    if not spec.get("enabled", True):
        raise ValidationError(f"Circuit disabled: {contract_name}")
    cap = spec.get("blob_capacity")
    if isinstance(cap, bool) or not isinstance(cap, int) or cap <= 0:
        raise ValidationError(f"circuit {contract_name} has no valid blob_capacity")
    return spec


def circuit_blob_capacity(circuit: CircuitArtifact, contract_name: str, spec: Dict[str, Any], blob_path: Sequence[str]) -> int:
    """
    The blob capacity compiled into the circuit (the length of its blob
    array). It must agree with the registry's blob_capacity.
    """
    where = ".".join(blob_path)
    length = circuit.array_length(blob_path)
    if length is None:
        raise ValidationError(f"circuit {circuit.name} ABI declares no blob array at {where}")
    if length != spec["blob_capacity"]:
        raise ValidationError(
            f"circuit {circuit.name} compiles {where} as {length} bytes, "
            f"but the registry blob_capacity for {contract_name} is {spec['blob_capacity']}"
        )
    return length


def check_blob_len(contract_name: str, spec: Dict[str, Any], data: bytes) -> None:
    expected = spec.get("blob_len")
    if expected is not None and len(data) != expected:
        raise ValidationError(f"Blob length is {len(data)} not {expected} bytes for {contract_name}")


def load_registered_circuit(contract_name: str, registry: Optional[Dict[str, Dict[str, Any]]] = None) -> CircuitArtifact:
    spec = get_spec(contract_name, registry)
    ap = spec.get("artifact_path")
    if not ap:
        raise ValidationError(f"circuit {contract_name} has no artifact_path in the registry")
    pd = spec.get("program_dir")
    return load_circuit_artifact(
        Path(ap),
        name=contract_name,
        program_dir=Path(pd) if pd else None,
        expected_sha256=spec.get("artifact_sha256"),
    )
