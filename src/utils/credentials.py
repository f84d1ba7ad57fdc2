"""Credential loading helpers for the EMA band bot."""

from __future__ import annotations

import os
import re
from typing import Mapping

import keyring
from keyring.errors import KeyringError

DEFAULT_SERVICE_NAME = "emaband-bot"
BLOCKFROST_ENV = "BLOCKFROST_PROJECT_ID"
TAPTOOLS_ENV = "TAPTOOLS_API_KEY"
_ENV_PATTERN = re.compile(r"^\$\{([A-Z0-9_]+)\}$")


def load_secret(
    service_name: str,
    config: Mapping[str, object] | None,
    *,
    key: str,
    env_var: str,
) -> str:
    """Load one secret from config, ``${ENV}`` placeholder, env var, or keyring in order."""
    value = _resolve_value(config, key)
    if not value:
        value = _clean_value(os.getenv(env_var))
    if not value:
        value = _get_keyring_value(service_name, key)
    if not value:
        raise ValueError(
            f"Credential '{key}' is missing. Provide {key} in the config, "
            f"set {env_var}, or store it in the keychain for service '{service_name}'."
        )
    return value


def store_secret(service_name: str, key: str, value: str) -> None:
    """Store a secret in the OS keychain via keyring."""
    cleaned = _clean_value(value)
    if not cleaned:
        raise ValueError(f"{key} must be a non-empty string.")
    try:
        keyring.set_password(service_name, key, cleaned)
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to store credentials in the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc


def _resolve_value(config: Mapping[str, object] | None, key: str) -> str | None:
    if not config or key not in config:
        return None
    raw = config.get(key)
    if not isinstance(raw, str):
        return _clean_value(str(raw)) if raw is not None else None
    raw = raw.strip()
    if not raw:
        return None
    match = _ENV_PATTERN.match(raw)
    if match:
        return _clean_value(os.getenv(match.group(1)))
    return _clean_value(raw)


def _clean_value(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _get_keyring_value(service_name: str, username: str) -> str | None:
    try:
        return _clean_value(keyring.get_password(service_name, username))
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to access the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc
