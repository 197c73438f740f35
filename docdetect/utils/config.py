"""
Configuration loader for docdetect.

Behavior:
- Looks for an explicit path, then the `DOCDETECT_CONFIG` env var.
- Falls back to `docdetect/config.json` next to the package.
- If none is found, uses conservative defaults.

Every file is validated against `docdetect/json_schema/config.schema.json`.
"""

import json
import os
from typing import Any, Dict, Optional

from jsonschema import ValidationError, validate

from ..core.errors import ConfigurationError
from ..core.policy import Policy, get_policy, policy_with_overrides
from .logger import logger

_DEFAULT_CONFIG: Dict[str, Any] = {
    "provider": "ollama",
    "providers": {"ollama": {"base_url": "http://localhost:11434", "model": "llama3"}},
    "pipeline": {"max_concurrency": 4, "deadline_seconds": 60, "max_output_tokens": 150},
    "policies": {},
    "log_level": "INFO",
}

SCHEMA_PATH = os.path.join(
    os.path.dirname(__file__), "..", "json_schema", "config.schema.json"
)

_config_cache: Dict[str, Any] = {}
_schema_cache: Dict[str, Any] = {}


def _default_config_path() -> str:
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return os.path.join(base_dir, "config.json")


def _load_schema() -> Dict[str, Any]:
    if not _schema_cache:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            _schema_cache.update(json.load(f))
    return _schema_cache


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from JSON with sensible fallbacks.

    An explicitly requested file (argument or env var) that is missing,
    unparsable or invalid raises ConfigurationError; only the implicit
    package-local file may silently fall back to defaults.

    Returns:
        Configuration dictionary (cached until reset_config_cache())
    """
    global _config_cache
    if _config_cache:
        return _config_cache

    explicit = path or os.environ.get("DOCDETECT_CONFIG")
    candidates = [explicit] if explicit else [_default_config_path()]

    for p in candidates:
        p_abs = os.path.abspath(p)
        if not os.path.exists(p_abs):
            if explicit:
                raise ConfigurationError(f"Config file not found: {p_abs}")
            continue
        try:
            with open(p_abs, "r", encoding="utf-8") as f:
                cfg = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {p_abs}: {e}") from e
        validate_config(cfg)
        _config_cache = cfg
        logger.info(f"Configuration loaded from {p_abs}")
        return cfg

    logger.warning(
        "No config found; using default configuration. "
        "Create 'docdetect/config.json' or set DOCDETECT_CONFIG to customize."
    )
    _config_cache = json.loads(json.dumps(_DEFAULT_CONFIG))
    return _config_cache


def reset_config_cache() -> None:
    """Forget the cached configuration (tests, reloads)."""
    global _config_cache
    _config_cache = {}


def validate_config(cfg: Dict[str, Any]) -> None:
    """Validate configuration against the JSON Schema.

    Raises:
        ConfigurationError: If the config is not an object or fails the schema
    """
    if not isinstance(cfg, dict):
        raise ConfigurationError("Configuration must be a JSON object/dict")

    try:
        validate(instance=cfg, schema=_load_schema())
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration at {location}: {e.message}") from e


def get_pipeline_config(cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the `pipeline` section, ready for DetectionOrchestrator."""
    cfg = cfg if cfg is not None else load_config()
    return dict(cfg.get("pipeline", {}))


def get_provider_config(name: str, cfg: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the settings block for one provider (empty if absent)."""
    cfg = cfg if cfg is not None else load_config()
    return dict(cfg.get("providers", {}).get(name, {}))


def build_policy(name: str, cfg: Optional[Dict[str, Any]] = None) -> Policy:
    """
    Resolve a built-in policy and apply the config's overrides to it.

    Args:
        name: Policy name or alias (resume, cv, job_description, jd)
        cfg: Configuration dict; loaded if omitted

    Raises:
        ConfigurationError: Unknown policy or overrides that break its invariants
    """
    cfg = cfg if cfg is not None else load_config()
    policy = get_policy(name)
    overrides = dict(cfg.get("policies", {}).get(policy.name, {}))
    if not overrides:
        return policy

    logger.info(f"Applying config overrides to policy '{policy.name}': {sorted(overrides)}")
    return policy_with_overrides(policy, **overrides)
