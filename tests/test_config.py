from pathlib import Path

from hyli_noir.config import Settings


def test_defaults(monkeypatch):
    for k in (
        "HYLI_NOIR_ALLOW_SUBPROCESS",
        "HYLI_NOIR_NARGO_BIN",
        "HYLI_NOIR_BB_BIN",
        "HYLI_NOIR_BB_SCHEME",
        "HYLI_NOIR_MAX_STDERR",
        "HYLI_NODE_URL",
        "HYLI_NODE_TIMEOUT_SECS",
        "HYLI_NOIR_CIRCUIT_REGISTRY_PATH",
    ):
        monkeypatch.delenv(k, raising=False)
    assert Settings.from_env() == Settings()


def test_env_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("HYLI_NOIR_ALLOW_SUBPROCESS", "TRUE")
    monkeypatch.setenv("HYLI_NOIR_BB_BIN", "/usr/local/bin/bb")
    monkeypatch.setenv("HYLI_NOIR_MAX_STDERR", "200")
    monkeypatch.setenv("HYLI_NODE_URL", "  ")
    monkeypatch.setenv("HYLI_NODE_TIMEOUT_SECS", "2.5")
    monkeypatch.setenv("HYLI_NOIR_CIRCUIT_REGISTRY_PATH", str(tmp_path / "reg.yaml"))

    s = Settings.from_env()
    assert s.allow_subprocess is True
    assert s.bb_bin == "/usr/local/bin/bb"
    assert s.max_stderr == 200
    assert s.node_url == "http://localhost:4321"
    assert s.node_timeout_secs == 2.5
    assert s.circuit_registry_path == tmp_path / "reg.yaml"
