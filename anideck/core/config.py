"""YAML-based configuration management with validation."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from anideck.core.constants import (
    ANILIST_API_URL,
    CONSUMET_URL,
    DEFAULT_PROVIDER_ORDER,
    EPISODES_INFO_URL,
    GOGOANIME_URL,
    SUPPORTED_PROVIDERS,
)
from anideck.core.exceptions import ConfigError, ConfigValidationError

# ── Paths ─────────────────────────────────────────────────────────────

_DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent.parent / "data"
_CONFIG_FILENAME = "config.yaml"


def data_dir() -> Path:
    """Return (and create) the data directory."""
    d = Path(os.environ.get("ANIDECK_DATA_DIR", str(_DEFAULT_DATA_DIR)))
    d.mkdir(parents=True, exist_ok=True)
    return d


def config_path() -> Path:
    return data_dir() / _CONFIG_FILENAME


# ── Defaults ──────────────────────────────────────────────────────────

DEFAULT_CONFIG: Dict[str, Any] = {
    "anilist": {
        "api_url": ANILIST_API_URL,
        "token": None,
    },
    "providers": {
        "order": list(DEFAULT_PROVIDER_ORDER),
        "consumet_url": CONSUMET_URL,
        "gogoanime_url": GOGOANIME_URL,
        "timeout": 20.0,
        "min_similarity": 0.6,
    },
    "episodes_info": {
        "url": EPISODES_INFO_URL,
    },
    "http": {
        "timeout": 15.0,
    },
    "logging": {
        "level": "INFO",
        "max_file_size_mb": 10,
        "backup_count": 5,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 5070,
    },
}

# ── Loader / Saver ────────────────────────────────────────────────────


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge *override* into *base* (non‑destructive)."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from YAML, creating a default file if missing.

    Missing keys are filled in from ``DEFAULT_CONFIG`` so the
    application always has a complete configuration.
    """
    path = path or config_path()

    if not path.exists():
        save_config(DEFAULT_CONFIG, path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")

    merged = _deep_merge(DEFAULT_CONFIG, raw)
    validate(merged)
    return merged


def save_config(cfg: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Atomically write *cfg* to the YAML config file."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            yaml.dump(cfg, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
        tmp.replace(path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config: {exc}") from exc


# ── Validation ────────────────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _positive_number(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigValidationError(f"{name} must be a positive number, got {value!r}")


def validate(cfg: Dict[str, Any]) -> None:
    """Raise :class:`ConfigValidationError` on invalid values."""

    # providers.order – non-empty, known, unique
    prov = cfg.get("providers", {})
    order = prov.get("order", [])
    if not isinstance(order, list) or not order:
        raise ConfigValidationError("providers.order must be a non‑empty list")
    for name in order:
        if name not in SUPPORTED_PROVIDERS:
            raise ConfigValidationError(
                f"Unknown provider '{name}' in providers.order (supported: {SUPPORTED_PROVIDERS})"
            )
    if len(set(order)) != len(order):
        raise ConfigValidationError("providers.order contains duplicates")

    _positive_number(prov.get("timeout"), "providers.timeout")

    ms = prov.get("min_similarity")
    if isinstance(ms, bool) or not isinstance(ms, (int, float)) or not (0 <= ms <= 1):
        raise ConfigValidationError(f"providers.min_similarity must be within [0, 1], got {ms!r}")

    _positive_number(cfg.get("http", {}).get("timeout"), "http.timeout")

    # logging.level
    ll = cfg.get("logging", {}).get("level", "INFO")
    if not isinstance(ll, str) or ll.upper() not in _VALID_LOG_LEVELS:
        raise ConfigValidationError(f"logging.level '{ll}' is not valid")

    # server.port
    port = cfg.get("server", {}).get("port", 5070)
    if isinstance(port, bool) or not isinstance(port, int) or not (1 <= port <= 65535):
        raise ConfigValidationError(f"server.port must be an integer 1‑65535, got {port}")
