"""Tests for load_config: defaults and environment overrides."""
from __future__ import annotations

import os

import pytest

from ipgate import config as config_mod
from ipgate.config import Config, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    # keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_mod, "load_dotenv", lambda **kw: False)
    for key in list(os.environ):
        if key.startswith("GATE_"):
            monkeypatch.delenv(key)


def test_defaults():
    cfg = load_config()
    assert cfg == Config()
    assert cfg.deny_ttl == 3600.0
    assert cfg.sweep_interval == 21600.0
    assert cfg.connect_timeout == 5.0
    assert cfg.response_timeout == 5.0
    assert cfg.max_connections == 10
    assert cfg.loopback == ("::1",)
    assert cfg.allow_max_size is None
    assert cfg.allow_ttl is None
    assert cfg.use_tls is False


def test_overrides(monkeypatch):
    monkeypatch.setenv("GATE_LISTEN_PORT", "9443")
    monkeypatch.setenv("GATE_USE_TLS", "TRUE")
    monkeypatch.setenv("GATE_VERIFY_URL", "https://auth.test/?ip={{ipaddr}}")
    monkeypatch.setenv("GATE_DENY_TTL", "0.5")
    monkeypatch.setenv("GATE_SWEEP_INTERVAL", "60")
    monkeypatch.setenv("GATE_MAX_CONNECTIONS", "32")
    monkeypatch.setenv("GATE_LOOPBACK", "::1, 127.0.0.1 ,")
    monkeypatch.setenv("GATE_ALLOW_MAX_SIZE", "1000")
    monkeypatch.setenv("GATE_ALLOW_TTL", "86400")
    monkeypatch.setenv("GATE_CA_FILE", "/etc/ssl/private-ca.pem")

    cfg = load_config()
    assert cfg.listen_port == 9443
    assert cfg.use_tls is True
    assert cfg.verify_url == "https://auth.test/?ip={{ipaddr}}"
    assert cfg.deny_ttl == 0.5
    assert cfg.sweep_interval == 60.0
    assert cfg.max_connections == 32
    assert cfg.loopback == ("::1", "127.0.0.1")
    assert cfg.allow_max_size == 1000
    assert cfg.allow_ttl == 86400.0
    assert cfg.ca_file == "/etc/ssl/private-ca.pem"


def test_malformed_number_fails_fast(monkeypatch):
    monkeypatch.setenv("GATE_DENY_TTL", "an hour")
    with pytest.raises(ValueError):
        load_config()


def test_reads_dotenv_file(monkeypatch, tmp_path):
    from dotenv import load_dotenv

    env_file = tmp_path / ".env"
    env_file.write_text("GATE_UPSTREAM_PORT=9000\n", encoding="utf-8")
    monkeypatch.setattr(
        config_mod, "load_dotenv", lambda **kw: load_dotenv(env_file, **kw)
    )
    # so monkeypatch removes what load_dotenv writes into os.environ
    monkeypatch.setenv("GATE_UPSTREAM_PORT", "1")
    cfg = load_config()
    assert cfg.upstream_port == 9000
