from __future__ import annotations

"""
External capabilities: Poseidon2 hashing, circuit execution and proof
generation.

Each capability is a Protocol so the pipeline can be exercised without real
cryptography. The subprocess implementations drive the Noir toolchain:
  - nargo execute   -> witness (target/<name>.gz)
  - bb prove        -> proof + public_inputs (32-byte big-endian words)
  - bb write_vk     -> verification key

Gate rules (see get_backends_from_env):
  - Must set HYLI_NOIR_ALLOW_SUBPROCESS=1, otherwise Disabled* stand-ins are
    returned and raise NotImplementedError when used.

Tools run in a worker thread; no timeout is applied here, callers bound the
latency of proof generation themselves.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Type
from uuid import uuid4
import asyncio
import json
import logging
import re
import subprocess
import tempfile

from hyli_noir.circuits import CircuitArtifact
from hyli_noir.codec import FIELD_BYTES, bytes32_to_field_hex, parse_field
from hyli_noir.config import Settings
from hyli_noir.errors import HyliNoirError, ProofGenerationError, ValidationError, WitnessError


logger = logging.getLogger(__name__)

_DISABLED_MSG = "set HYLI_NOIR_ALLOW_SUBPROCESS=1 to enable nargo/bb"


@dataclass(frozen=True)
class BackendProof:
    proof: bytes
    public_inputs: List[str] = field(default_factory=list)


class Poseidon2Hasher(Protocol):
    async def poseidon2(self, inputs: Sequence[int]) -> int:
        ...


class CircuitExecutor(Protocol):
    async def execute(self, circuit: CircuitArtifact, inputs: Mapping[str, Any]) -> bytes:
        ...


class ProofBackend(Protocol):
    async def prove(self, circuit: CircuitArtifact, witness: bytes) -> BackendProof:
        ...

    async def verification_key(self, circuit: CircuitArtifact) -> bytes:
        ...


@dataclass(frozen=True)
class DisabledHasher:
    async def poseidon2(self, inputs: Sequence[int]) -> int:
        raise NotImplementedError(f"Poseidon2 hasher disabled ({_DISABLED_MSG}).")


@dataclass(frozen=True)
class DisabledExecutor:
    async def execute(self, circuit: CircuitArtifact, inputs: Mapping[str, Any]) -> bytes:
        raise NotImplementedError(f"circuit execution disabled ({_DISABLED_MSG}).")


@dataclass(frozen=True)
class DisabledBackend:
    async def prove(self, circuit: CircuitArtifact, witness: bytes) -> BackendProof:
        raise NotImplementedError(f"proof backend disabled ({_DISABLED_MSG}).")

    async def verification_key(self, circuit: CircuitArtifact) -> bytes:
        raise NotImplementedError(f"proof backend disabled ({_DISABLED_MSG}).")


# ---------- Prover.toml ----------

_I64_MAX = (1 << 63) - 1


def _toml_string(s: str) -> str:
    out = []
    for ch in s:
        o = ord(ch)
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif o < 0x20 or o == 0x7F:
            out.append(f"\\u{o:04X}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        # large field elements do not fit a TOML integer
        return str(v) if -_I64_MAX <= v <= _I64_MAX else _toml_string(hex(v))
    if isinstance(v, str):
        return _toml_string(v)
    if isinstance(v, (bytes, bytearray)):
        return "[" + ", ".join(str(b) for b in v) + "]"
    if isinstance(v, (list, tuple)):
        return "[" + ", ".join(_toml_value(x) for x in v) + "]"
    raise ValidationError(f"cannot encode {type(v).__name__} as a circuit input")


def _toml_table(lines: List[str], prefix: str, table: Mapping[str, Any]) -> None:
    nested = []
    for k, v in table.items():
        if isinstance(v, Mapping):
            nested.append((k, v))
        else:
            lines.append(f"{k} = {_toml_value(v)}")
    for k, v in nested:
        path = f"{prefix}.{k}" if prefix else k
        lines.append("")
        lines.append(f"[{path}]")
        _toml_table(lines, path, v)


def render_prover_toml(inputs: Mapping[str, Any]) -> str:
    lines: List[str] = []
    _toml_table(lines, "", inputs)
    return "\n".join(lines).lstrip("\n") + "\n"


# ---------- subprocess plumbing ----------

def _tail(s: Optional[str], n: int) -> str:
    return (s or "")[-n:]


def _run_tool(
    cmd: List[str],
    *,
    error_cls: Type[HyliNoirError],
    max_stderr: int,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    logger.debug("running %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise error_cls(f"{cmd[0]} not found: {e}") from e

    if proc.returncode != 0:
        err = _tail(proc.stderr or proc.stdout, max_stderr)
        logger.warning("%s %s failed (rc=%s)", cmd[0], cmd[1] if len(cmd) > 1 else "", proc.returncode)
        raise error_cls(f"{cmd[0]} {cmd[1] if len(cmd) > 1 else ''} failed (rc={proc.returncode}): {err}")
    return proc


async def _run_tool_async(cmd: List[str], **kw: Any) -> subprocess.CompletedProcess:
    return await asyncio.to_thread(_run_tool, cmd, **kw)


def _write_artifact(circuit: CircuitArtifact, d: Path) -> Path:
    if circuit.path is not None and Path(circuit.path).exists():
        return Path(circuit.path)
    p = d / f"{circuit.name}.json"
    doc: Dict[str, Any] = {"bytecode": circuit.bytecode, "abi": circuit.abi}
    if circuit.noir_version:
        doc["noir_version"] = circuit.noir_version
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def split_public_input_words(raw: bytes) -> List[str]:
    if len(raw) % FIELD_BYTES:
        raise ProofGenerationError(f"public_inputs output is {len(raw)} bytes, not a multiple of {FIELD_BYTES}")
    return [bytes32_to_field_hex(raw[i: i + FIELD_BYTES]) for i in range(0, len(raw), FIELD_BYTES)]


# ---------- nargo ----------

@dataclass(frozen=True)
class NargoExecutor:
    """
    Runs `nargo execute` inside the circuit's program directory. Each call
    writes its own prover file and witness name, so concurrent calls do not
    collide.
    """
    nargo_bin: str = "nargo"
    max_stderr: int = 4000

    async def execute(self, circuit: CircuitArtifact, inputs: Mapping[str, Any]) -> bytes:
        if circuit.program_dir is None:
            raise WitnessError(f"circuit {circuit.name} has no program_dir; nargo needs the Noir project")
        program_dir = Path(circuit.program_dir)
        tag = f"hyli_{uuid4().hex}"
        prover_path = program_dir / f"{tag}.toml"
        witness_path = program_dir / "target" / f"{tag}.gz"

        prover_path.write_text(render_prover_toml(inputs), encoding="utf-8")
        try:
            await _run_tool_async(
                [self.nargo_bin, "execute", "--program-dir", str(program_dir), "--prover-name", tag, tag],
                error_cls=WitnessError,
                max_stderr=self.max_stderr,
            )
            if not witness_path.exists():
                raise WitnessError(f"nargo execute produced no witness at {witness_path}")
            return witness_path.read_bytes()
        finally:
            prover_path.unlink(missing_ok=True)
            witness_path.unlink(missing_ok=True)


POSEIDON2_HELPER = """fn main(x: Field) -> pub Field {
    std::hash::poseidon2::Poseidon2::hash([x], 1)
}
"""

_CIRCUIT_OUTPUT_RE = re.compile(r"Circuit output:\s*(0x[0-9a-fA-F]+)")


@dataclass(frozen=True)
class NargoPoseidon2Hasher:
    """
    Poseidon2 over a single field element, computed by executing a one-line
    helper circuit and reading its public output.
    """
    nargo_bin: str = "nargo"
    max_stderr: int = 4000

    async def poseidon2(self, inputs: Sequence[int]) -> int:
        if len(inputs) != 1:
            raise ValidationError("the nargo Poseidon2 helper hashes exactly one field element")
        with tempfile.TemporaryDirectory(prefix="hyli_poseidon2_") as d:
            td = Path(d)
            (td / "src").mkdir()
            (td / "Nargo.toml").write_text(
                '[package]\nname = "poseidon2_helper"\ntype = "bin"\nauthors = [""]\n\n[dependencies]\n',
                encoding="utf-8",
            )
            (td / "src" / "main.nr").write_text(POSEIDON2_HELPER, encoding="utf-8")
            (td / "Prover.toml").write_text(render_prover_toml({"x": hex(int(inputs[0]))}), encoding="utf-8")

            proc = await _run_tool_async(
                [self.nargo_bin, "execute", "--program-dir", str(td)],
                error_cls=WitnessError,
                max_stderr=self.max_stderr,
            )
        out = (proc.stdout or "") + (proc.stderr or "")
        m = _CIRCUIT_OUTPUT_RE.search(out)
        if not m:
            raise WitnessError(f"could not parse Poseidon2 helper output: {_tail(out, self.max_stderr)}")
        return parse_field(m.group(1))


# ---------- barretenberg ----------

@dataclass(frozen=True)
class BarretenbergBackend:
    bb_bin: str = "bb"
    scheme: str = "ultra_honk"
    max_stderr: int = 4000

    async def prove(self, circuit: CircuitArtifact, witness: bytes) -> BackendProof:
        with tempfile.TemporaryDirectory(prefix="hyli_bb_") as d:
            td = Path(d)
            artifact = _write_artifact(circuit, td)
            witness_path = td / "witness.gz"
            witness_path.write_bytes(witness)
            out = td / "out"
            out.mkdir()

            await _run_tool_async(
                [self.bb_bin, "prove", "--scheme", self.scheme, "-b", str(artifact), "-w", str(witness_path), "-o", str(out)],
                error_cls=ProofGenerationError,
                max_stderr=self.max_stderr,
            )

            proof_path = out / "proof"
            if not proof_path.exists():
                raise ProofGenerationError(f"bb prove produced no proof in {out}")
            pub_path = out / "public_inputs"
            raw_pub = pub_path.read_bytes() if pub_path.exists() else b""
            return BackendProof(proof=proof_path.read_bytes(), public_inputs=split_public_input_words(raw_pub))

    async def verification_key(self, circuit: CircuitArtifact) -> bytes:
        with tempfile.TemporaryDirectory(prefix="hyli_bb_vk_") as d:
            td = Path(d)
            artifact = _write_artifact(circuit, td)
            out = td / "out"
            out.mkdir()
            await _run_tool_async(
                [self.bb_bin, "write_vk", "--scheme", self.scheme, "-b", str(artifact), "-o", str(out)],
                error_cls=ProofGenerationError,
                max_stderr=self.max_stderr,
            )
            vk_path = out / "vk"
            if not vk_path.exists():
                raise ProofGenerationError(f"bb write_vk produced no vk in {out}")
            return vk_path.read_bytes()


def get_backends_from_env(
    settings: Optional[Settings] = None,
) -> Tuple[CircuitExecutor, ProofBackend, Poseidon2Hasher]:
    settings = settings or Settings.from_env()
    if not settings.allow_subprocess:
        return DisabledExecutor(), DisabledBackend(), DisabledHasher()
    return (
        NargoExecutor(nargo_bin=settings.nargo_bin, max_stderr=settings.max_stderr),
        BarretenbergBackend(bb_bin=settings.bb_bin, scheme=settings.bb_scheme, max_stderr=settings.max_stderr),
        NargoPoseidon2Hasher(nargo_bin=settings.nargo_bin, max_stderr=settings.max_stderr),
    )
