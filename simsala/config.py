"""App configuration (model connection, timeouts, system prompt override, catalogs).

Stored as config.json in the data directory and merged over defaults.
Connection settings may be overridden from the environment:

    SIMSALA_PROVIDER_URL, SIMSALA_MODEL, SIMSALA_API_KEY
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from simsala.llm import LLM, HttpLLM, TimeoutLLM

logger = logging.getLogger(__name__)

_CONFIG_DEFAULTS: dict[str, Any] = {
    "provider_url": "http://localhost:11434",
    "provider_format": "ollama",
    "model": "llama3.2",
    "api_key": "",
    "timeout": 120,
    "call_timeout": None,
    "system_prompt_override": "",
    "catalog_dir": "",
}

_ENV_OVERRIDES = {
    "provider_url": "SIMSALA_PROVIDER_URL",
    "model": "SIMSALA_MODEL",
    "api_key": "SIMSALA_API_KEY",
}


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _stored_config(data_dir: Path) -> dict[str, Any]:
    config = dict(_CONFIG_DEFAULTS)
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        config.update({k: v for k, v in stored.items() if k in _CONFIG_DEFAULTS})
    return config


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored_config(data_dir)
    for key, env_var in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config[key] = value
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Unknown keys are ignored. Returns full config."""
    config = _stored_config(data_dir)
    ignored = sorted(set(fields) - set(_CONFIG_DEFAULTS))
    if ignored:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(ignored))
    config.update({k: v for k, v in fields.items() if k in _CONFIG_DEFAULTS})
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)


def llm_from_config(config: dict[str, Any]) -> LLM:
    """Build the generation client described by a config dict."""
    llm: LLM = HttpLLM(
        provider_url=config["provider_url"],
        model=config["model"],
        api_key=config.get("api_key") or "",
        provider_format=config.get("provider_format") or "ollama",
        timeout=float(config.get("timeout") or 120),
    )
    if config.get("call_timeout"):
        llm = TimeoutLLM(llm, float(config["call_timeout"]))
    return llm
