"""Configuration loading for the dnsprompt CLI.

Brief:
  This module builds the immutable ServerConfig used at startup. It
  centralizes:
    - reading an optional YAML config file
    - loading ``.env.local`` / ``.env`` files (never overriding real env vars)
    - mapping environment variables onto config keys
    - applying CLI overrides and validating the result

Inputs:
  - YAML config path, environment mapping, CLI overrides

Outputs:
  - ServerConfig

Precedence (highest first): CLI overrides, environment, YAML file, defaults.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .config_schema import ConfigError, ServerConfig, build_config, parse_models

DEFAULT_ENV_FILES = (".env.local", ".env")

# Simple one-to-one environment variable mappings onto top-level keys.
_ENV_KEYS = {
    "OPENROUTER_API_KEY": "api_key",
    "SYSTEM_PROMPT": "system_prompt",
    "OPENROUTER_URL": "api_url",
}

_INT_ENV_KEYS = {
    "MAX_CHUNK_SIZE": "max_chunk_size",
    "MAX_TOTAL_SIZE": "max_total_size",
    "MAX_CONCURRENT_QUERIES": "max_concurrent",
}

_SAMPLING_ENV_KEYS = {
    "LLM_TEMPERATURE": ("temperature", float),
    "LLM_MAX_TOKENS": ("max_tokens", int),
    "LLM_TOP_P": ("top_p", float),
    "LLM_TOP_K": ("top_k", int),
    "LLM_FREQUENCY_PENALTY": ("frequency_penalty", float),
    "LLM_PRESENCE_PENALTY": ("presence_penalty", float),
}


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read a YAML config file into a mapping.

    Inputs:
      - config_path: Path to the YAML file.

    Outputs:
      - dict: Parsed mapping ({} for an empty file).

    Raises:
      - ConfigError: unreadable file, invalid YAML, or a non-mapping document.
    """

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def load_env_files(
    environ: Mapping[str, str], env_files: Iterable[str] = DEFAULT_ENV_FILES
) -> Dict[str, str]:
    """Brief: Merge dotenv files under an environment mapping.

    Inputs:
      - environ: Base environment (wins over file values).
      - env_files: Paths tried in order; earlier files win over later ones.

    Outputs:
      - dict: New mapping; environ itself is not modified.
    """

    merged = dict(environ)
    for path in env_files:
        if not path or not os.path.isfile(path):
            continue
        for key, value in dotenv_values(path).items():
            if value is not None and key not in merged:
                merged[key] = value
    return merged


def _first_env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


def config_from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    """Brief: Map environment variables onto config keys.

    Inputs:
      - env: Environment mapping.

    Outputs:
      - dict: Only the keys present in env.

    Raises:
      - ConfigError: unparsable numeric values.
    """

    out: Dict[str, Any] = {}
    for var, key in _ENV_KEYS.items():
        if var in env:
            out[key] = env[var]

    models = env.get("OPENROUTER_MODEL")
    if models is not None:
        parsed = parse_models(models)
        if not parsed:
            raise ConfigError("OPENROUTER_MODEL list cannot be empty")
        out["models"] = parsed

    port = _first_env(env, "PORT", "DNS_PORT")
    if port is not None:
        try:
            out["port"] = int(port)
        except ValueError as e:
            raise ConfigError(f"Invalid PORT/DNS_PORT value: {port!r}") from e

    host = _first_env(env, "HOST", "DNS_ADDRESS")
    if host is not None:
        out["host"] = host

    for var, key in _INT_ENV_KEYS.items():
        raw = _first_env(env, var)
        if raw is None:
            continue
        try:
            out[key] = int(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid {var} value: {raw!r}") from e

    sampling: Dict[str, Any] = {}
    for var, (key, conv) in _SAMPLING_ENV_KEYS.items():
        raw = _first_env(env, var)
        if raw is None:
            continue
        try:
            sampling[key] = conv(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid {var} value: {raw!r}") from e
    if sampling:
        out["sampling"] = sampling

    level = _first_env(env, "LOG_LEVEL")
    if level is not None:
        out["logging"] = {"level": level}
    return out


def _merge(base: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    env_files: Iterable[str] = DEFAULT_ENV_FILES,
) -> ServerConfig:
    """Brief: Build the startup ServerConfig from file, environment and CLI.

    Inputs:
      - config_path: Optional YAML config path.
      - environ: Environment mapping (defaults to os.environ).
      - overrides: CLI-level overrides; None values are ignored.
      - env_files: dotenv files to merge beneath the environment.

    Outputs:
      - ServerConfig.

    Raises:
      - ConfigError: missing API key, empty model list, or invalid values.

    Example:
      >>> cfg = load_config(environ={"OPENROUTER_API_KEY": "k"}, env_files=())
      >>> cfg.port
      53
    """

    env = load_env_files(os.environ if environ is None else environ, env_files)

    data: Dict[str, Any] = {}
    if config_path:
        data = read_config_file(config_path)
    data = _merge(data, config_from_env(env))
    data = _merge(
        data, {k: v for k, v in (overrides or {}).items() if v is not None}
    )

    if not data.get("api_key"):
        raise ConfigError("OPENROUTER_API_KEY environment variable not set")
    return build_config(data)


def mask_api_key(key: str) -> str:
    """Brief: Mask an API key for logging.

    Inputs:
      - key: Secret key.

    Outputs:
      - str: First 8 characters for longer keys, otherwise one '*' per char.

    Example:
      >>> mask_api_key("sk-or-v1-1234567890abcdef")
      'sk-or-v1'
      >>> mask_api_key("short")
      '*****'
    """

    visible = 8
    if len(key) <= visible:
        return "*" * len(key)
    return key[:visible]
