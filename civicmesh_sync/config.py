from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .credentials import Credentials
from .errors import ConfigError

USE_MOCK_ENV = "CIVICMESH_USE_MOCK_API"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_use_mock(config: AppConfig, *, environ: Mapping[str, str] | None = None) -> bool:
    """
    Decide whether the mock backend is active.

    CIVICMESH_USE_MOCK_API overrides the config value when set to a boolean word.
    """
    env = os.environ if environ is None else environ
    raw = (env.get(USE_MOCK_ENV) or "").strip().casefold()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    if raw:
        raise ConfigError(f"{USE_MOCK_ENV} must be true or false, got {raw!r}")
    return bool(config.backend.use_mock)


def resolve_credentials(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> Credentials:
    """
    Read the Basic-auth pair from the configured environment variables.

    Raises ConfigError naming every missing variable.
    """
    env = os.environ if environ is None else environ

    user_env = config.backend.username_env
    pass_env = config.backend.password_env

    missing: list[str] = []
    if not (env.get(user_env) or "").strip():
        missing.append(user_env)
    if not (env.get(pass_env) or "").strip():
        missing.append(pass_env)

    if missing:
        joined = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {joined}")

    return Credentials(
        username=env[user_env].strip(),
        password=env[pass_env].strip(),
    )


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
