"""Tests for config loading."""

import pytest
import yaml

from remote_compute.config import DEFAULT_API_URL, RemoteComputeConfig, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("DIGITALOCEAN_API_URL", raising=False)
    monkeypatch.delenv("REMOTE_COMPUTE_LEDGER", raising=False)


def test_defaults():
    config = load_config()
    assert config == RemoteComputeConfig()
    assert config.api_url == DEFAULT_API_URL
    assert (config.min_ttl_minutes, config.default_ttl_minutes, config.max_ttl_minutes) == (5, 60, 180)
    assert (config.min_exec_timeout, config.default_exec_timeout, config.max_exec_timeout) == (5, 300, 1800)
    assert config.max_active_per_org == 3
    assert config.max_provisions_per_hour == 10


def test_yaml_top_level(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"max_active_per_org": 5, "poll_budget": 120}))

    config = load_config(str(path))

    assert config.max_active_per_org == 5
    assert config.poll_budget == 120
    assert config.max_provisions_per_hour == 10


def test_yaml_section(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"remote_compute": {"ledger_path": "/var/lib/rc/ledger.json"}}))

    assert load_config(str(path)).ledger_path == "/var/lib/rc/ledger.json"


def test_empty_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == RemoteComputeConfig()


def test_unknown_key(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"max_droplets": 5}))
    with pytest.raises(ValueError, match="max_droplets"):
        load_config(str(path))


def test_malformed_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("key: [unclosed")
    with pytest.raises(ValueError, match="Error parsing YAML"):
        load_config(str(path))


def test_not_a_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"api_url": "https://from-yaml/v2", "ledger_path": "/from/yaml"}))
    monkeypatch.setenv("DIGITALOCEAN_API_URL", "https://from-env/v2")
    monkeypatch.setenv("REMOTE_COMPUTE_LEDGER", "/from/env")

    config = load_config(str(path))

    assert config.api_url == "https://from-env/v2"
    assert config.ledger_path == "/from/env"
