"""Service configuration (store backend, rollover throttle, retries, logging).

Resolution order, later wins:

    defaults  →  {data_dir}/config.json  →  environment variables

update_config() applies a partial update to config.json only; environment
overrides are never written back. Changes apply the next time the app is
created.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable

_CONFIG_DEFAULTS: dict[str, Any] = {
    "store_backend": "json",
    "rollover_throttle_seconds": 60,
    "transaction_max_attempts": 5,
    "log_level": "INFO",
    "default_pets": ["hamster", "dog"],
}

STORE_BACKENDS = ("json", "memory")

# env var → (config key, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Callable[[str], Any]]] = {
    "STORE_BACKEND": ("store_backend", str),
    "ROLLOVER_THROTTLE_SECONDS": ("rollover_throttle_seconds", float),
    "TRANSACTION_MAX_ATTEMPTS": ("transaction_max_attempts", int),
    "LOG_LEVEL": ("log_level", str),
}


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _read_stored(data_dir: Path) -> dict[str, Any]:
    path = _config_path(data_dir)
    if not path.is_file():
        return {}
    try:
        stored = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(stored, dict):
        raise ValueError(f"{path} must hold a JSON object")
    return {k: v for k, v in stored.items() if k in _CONFIG_DEFAULTS}


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config: dict[str, Any] = dict(_CONFIG_DEFAULTS)
    config["default_pets"] = list(_CONFIG_DEFAULTS["default_pets"])
    config.update(_read_stored(data_dir))
    for var, (key, parse) in _ENV_OVERRIDES.items():
        raw = os.getenv(var)
        if raw:
            try:
                config[key] = parse(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {var}: {raw!r}") from e
    config["log_level"] = str(config["log_level"]).upper()
    _validate(config)
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge known fields into config.json and persist. Returns full config."""
    stored = _read_stored(data_dir)
    stored.update({k: v for k, v in fields.items() if k in _CONFIG_DEFAULTS})
    _validate({**_CONFIG_DEFAULTS, **stored})
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(stored, indent=2))
    return get_config(data_dir)


def _validate(config: dict[str, Any]) -> None:
    if config["store_backend"] not in STORE_BACKENDS:
        raise ValueError(
            f"store_backend must be one of {', '.join(STORE_BACKENDS)}, "
            f"got {config['store_backend']!r}"
        )
    if float(config["rollover_throttle_seconds"]) < 0:
        raise ValueError("rollover_throttle_seconds must not be negative")
    if int(config["transaction_max_attempts"]) < 1:
        raise ValueError("transaction_max_attempts must be at least 1")
    pets = config["default_pets"]
    if not isinstance(pets, list) or not all(isinstance(p, str) and p for p in pets):
        raise ValueError("default_pets must be a list of pet ids")
