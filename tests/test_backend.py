import asyncio
import subprocess
from dataclasses import replace
from pathlib import Path

import pytest

from hyli_noir.backend import (
    BarretenbergBackend,
    DisabledBackend,
    DisabledExecutor,
    DisabledHasher,
    NargoExecutor,
    NargoPoseidon2Hasher,
    get_backends_from_env,
    render_prover_toml,
    split_public_input_words,
)
from hyli_noir.config import Settings
from hyli_noir.errors import ProofGenerationError, ValidationError, WitnessError


def _arg(cmd, flag):
    return cmd[cmd.index(flag) + 1]


def test_render_prover_toml_scalars_then_tables():
    text = render_prover_toml(
        {
            "a": 1,
            "nested": {"c": [1, 2], "inner": {"d": "0x1"}},
            "b": True,
            "s": 'x\x00"',
            "big": 1 << 70,
            "arr": b"\x01\x02",
            "after": 3,
        }
    )
    assert text == (
        "a = 1\n"
        "b = true\n"
        's = "x\\u0000\\""\n'
        f'big = "{hex(1 << 70)}"\n'
        "arr = [1, 2]\n"
        "after = 3\n"
        "\n"
        "[nested]\n"
        "c = [1, 2]\n"
        "\n"
        "[nested.inner]\n"
        'd = "0x1"\n'
    )


def test_render_prover_toml_rejects_unknown_types():
    with pytest.raises(ValidationError):
        render_prover_toml({"x": 1.5})


def test_split_public_input_words():
    assert split_public_input_words(b"") == []
    assert split_public_input_words(b"\x00" * 31 + b"\x05") == ["0x" + "00" * 31 + "05"]
    with pytest.raises(ProofGenerationError):
        split_public_input_words(b"\x00" * 33)


def test_backends_disabled_by_default(circuit):
    executor, backend, hasher = get_backends_from_env(Settings())
    assert isinstance(executor, DisabledExecutor)
    assert isinstance(backend, DisabledBackend)
    assert isinstance(hasher, DisabledHasher)
    with pytest.raises(NotImplementedError, match="HYLI_NOIR_ALLOW_SUBPROCESS"):
        asyncio.run(backend.verification_key(circuit))


def test_backends_enabled_from_env(monkeypatch):
    monkeypatch.setenv("HYLI_NOIR_ALLOW_SUBPROCESS", "yes")
    monkeypatch.setenv("HYLI_NOIR_NARGO_BIN", "/opt/nargo")
    monkeypatch.setenv("HYLI_NOIR_BB_SCHEME", "ultra_keccak_honk")
    monkeypatch.setenv("HYLI_NOIR_MAX_STDERR", "bogus")
    executor, backend, hasher = get_backends_from_env()
    assert executor == NargoExecutor(nargo_bin="/opt/nargo", max_stderr=4000)
    assert backend == BarretenbergBackend(bb_bin="bb", scheme="ultra_keccak_honk", max_stderr=4000)
    assert hasher == NargoPoseidon2Hasher(nargo_bin="/opt/nargo", max_stderr=4000)


def test_nargo_execute_writes_prover_file_and_cleans_up(monkeypatch, tmp_path: Path, circuit):
    seen = {}

    def fake_run(cmd, **kw):
        tag = cmd[-1]
        program_dir = Path(_arg(cmd, "--program-dir"))
        seen["cmd"] = cmd
        seen["toml"] = (program_dir / f"{_arg(cmd, '--prover-name')}.toml").read_text(encoding="utf-8")
        (program_dir / "target").mkdir(exist_ok=True)
        (program_dir / "target" / f"{tag}.gz").write_bytes(b"witness-gz")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    c = replace(circuit, program_dir=tmp_path)
    witness = asyncio.run(NargoExecutor(nargo_bin="nargo").execute(c, {"password": [1, 2]}))

    assert witness == b"witness-gz"
    assert seen["cmd"][:2] == ["nargo", "execute"]
    assert seen["toml"] == "password = [1, 2]\n"
    assert list(tmp_path.glob("*.toml")) == []
    assert list((tmp_path / "target").glob("*.gz")) == []


def test_nargo_failure_is_witness_error_with_stderr_tail(monkeypatch, tmp_path: Path, circuit):
    def fake_run(cmd, **kw):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="x" * 100 + "Failed constraint")

    monkeypatch.setattr(subprocess, "run", fake_run)
    c = replace(circuit, program_dir=tmp_path)
    with pytest.raises(WitnessError) as ei:
        asyncio.run(NargoExecutor(max_stderr=17).execute(c, {}))
    assert str(ei.value).endswith("Failed constraint")
    assert "xxx" not in str(ei.value)
    assert list(tmp_path.glob("*.toml")) == []


def test_nargo_missing_binary_or_program_dir(monkeypatch, tmp_path: Path, circuit):
    def fake_run(cmd, **kw):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", fake_run)
    with pytest.raises(WitnessError, match="not found"):
        asyncio.run(NargoExecutor(nargo_bin="nope").execute(replace(circuit, program_dir=tmp_path), {}))
    with pytest.raises(WitnessError, match="program_dir"):
        asyncio.run(NargoExecutor().execute(circuit, {}))


def test_poseidon2_helper_parses_circuit_output(monkeypatch):
    seen = {}

    def fake_run(cmd, **kw):
        seen["toml"] = (Path(_arg(cmd, "--program-dir")) / "Prover.toml").read_text(encoding="utf-8")
        return subprocess.CompletedProcess(
            cmd, 0, stdout="[poseidon2_helper] Circuit witness successfully solved\n"
                           "[poseidon2_helper] Circuit output: 0x2a\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    assert asyncio.run(NargoPoseidon2Hasher().poseidon2([5])) == 42
    assert seen["toml"] == 'x = "0x5"\n'


def test_poseidon2_helper_errors(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="", stderr=""))
    with pytest.raises(WitnessError, match="could not parse"):
        asyncio.run(NargoPoseidon2Hasher().poseidon2([5]))
    with pytest.raises(ValidationError):
        asyncio.run(NargoPoseidon2Hasher().poseidon2([1, 2]))


def test_bb_prove_and_write_vk(monkeypatch, circuit):
    calls = []

    def fake_run(cmd, **kw):
        calls.append(cmd)
        out = Path(_arg(cmd, "-o"))
        assert Path(_arg(cmd, "-b")).exists()
        if cmd[1] == "prove":
            assert Path(_arg(cmd, "-w")).read_bytes() == b"wit"
            (out / "proof").write_bytes(b"\x01\x02\x03")
            (out / "public_inputs").write_bytes(b"\x00" * 31 + b"\x07" + b"\x00" * 31 + b"\x08")
        else:
            (out / "vk").write_bytes(b"vk!")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    bb = BarretenbergBackend(bb_bin="bb", scheme="ultra_honk")

    res = asyncio.run(bb.prove(circuit, b"wit"))
    assert res.proof == b"\x01\x02\x03"
    assert res.public_inputs == ["0x" + "00" * 31 + "07", "0x" + "00" * 31 + "08"]
    assert asyncio.run(bb.verification_key(circuit)) == b"vk!"
    assert [c[1] for c in calls] == ["prove", "write_vk"]
    assert all(_arg(c, "--scheme") == "ultra_honk" for c in calls)


def test_bb_failures_are_proof_generation_errors(monkeypatch, circuit):
    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 137, stdout="", stderr="Killed"))
    with pytest.raises(ProofGenerationError, match="Killed"):
        asyncio.run(BarretenbergBackend().prove(circuit, b"wit"))

    monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="", stderr=""))
    with pytest.raises(ProofGenerationError, match="no vk"):
        asyncio.run(BarretenbergBackend().verification_key(circuit))
