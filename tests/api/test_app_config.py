"""Tests for backend.config — defaults, persistence, env overrides."""

import json

import pytest

from backend.config import get_config, update_config


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch):
    for var in ("STORE_BACKEND", "ROLLOVER_THROTTLE_SECONDS", "TRANSACTION_MAX_ATTEMPTS", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


def test_get_config_empty(tmp_path):
    """Returns defaults when no config file exists."""
    config = get_config(tmp_path)
    assert config["store_backend"] == "json"
    assert config["rollover_throttle_seconds"] == 60
    assert config["transaction_max_attempts"] == 5
    assert config["default_pets"] == ["hamster", "dog"]


def test_update_config_partial(tmp_path):
    """Partial updates persist and keep other keys."""
    update_config(tmp_path, {"rollover_throttle_seconds": 5})
    update_config(tmp_path, {"default_pets": ["fox"]})

    config = get_config(tmp_path)
    assert config["rollover_throttle_seconds"] == 5
    assert config["default_pets"] == ["fox"]
    assert config["store_backend"] == "json"
    stored = json.loads((tmp_path / "config.json").read_text())
    assert stored == {"rollover_throttle_seconds": 5, "default_pets": ["fox"]}


def test_unknown_keys_ignored(tmp_path):
    config = update_config(tmp_path, {"theme": "dark"})
    assert "theme" not in config


def test_invalid_backend_rejected(tmp_path):
    with pytest.raises(ValueError):
        update_config(tmp_path, {"store_backend": "postgres"})
    assert not (tmp_path / "config.json").exists()


def test_env_overrides_stored_values(tmp_path, monkeypatch):
    update_config(tmp_path, {"store_backend": "json", "log_level": "debug"})
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("TRANSACTION_MAX_ATTEMPTS", "9")

    config = get_config(tmp_path)
    assert config["store_backend"] == "memory"
    assert config["transaction_max_attempts"] == 9
    assert config["log_level"] == "DEBUG"
    # env values are never written back
    assert json.loads((tmp_path / "config.json").read_text())["store_backend"] == "json"


def test_bad_env_value(tmp_path, monkeypatch):
    monkeypatch.setenv("TRANSACTION_MAX_ATTEMPTS", "lots")
    with pytest.raises(ValueError):
        get_config(tmp_path)


def test_malformed_config_file(tmp_path):
    (tmp_path / "config.json").write_text("{store_backend: memory")
    with pytest.raises(ValueError, match="Invalid JSON"):
        get_config(tmp_path)
    with pytest.raises(ValueError, match="Invalid JSON"):
        update_config(tmp_path, {"log_level": "debug"})


def test_config_file_must_be_object(tmp_path):
    (tmp_path / "config.json").write_text("[1, 2]")
    with pytest.raises(ValueError, match="JSON object"):
        get_config(tmp_path)
