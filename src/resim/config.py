"""Resolution of global CLI settings: flag > env > config file > default."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

import yaml

from .auth import AuthConfig
from .client import ReSimError
from .credentials import CONFIG_DIRNAME

ENV_PREFIX = "RESIM"
CONFIG_FILENAME = "resim.yaml"

DEFAULT_API_URL = "https://api.resim.ai/v1/"
DEFAULT_AUTH_URL = "https://resim.us.auth0.com/"
DEFAULT_BFF_URL = "https://bff.resim.ai/graphql"
DEFAULT_TIMEOUT = 30.0

_TRUTHY = {"1", "true", "yes", "on"}


def env_name(key: str) -> str:
    """Map a kebab-case option name to its environment variable, e.g. auth-url -> RESIM_AUTH_URL."""
    return f"{ENV_PREFIX}_{key.replace('-', '_').upper()}"


def config_file_path() -> Path:
    return Path.home() / CONFIG_DIRNAME / CONFIG_FILENAME


def load_file_config(path: Path | None = None) -> dict:
    path = path or config_file_path()
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            parsed = yaml.safe_load(fh)
    except OSError as exc:
        raise ReSimError("CONFIG", f"Unable to read config file: {path}", 0) from exc
    except yaml.YAMLError as exc:
        raise ReSimError("CONFIG", f"Invalid YAML in config file: {path}", 0) from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ReSimError("CONFIG", f"Config file must contain a mapping: {path}", 0)
    return parsed


def resolve_setting(flag_value, env_name: str, config_value, default_value):
    if flag_value is not None:
        return flag_value
    env_value = os.environ.get(env_name)
    if env_value not in (None, ""):
        return env_value
    if config_value is not None:
        return config_value
    return default_value


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL
    client_id: str = ""
    client_secret: str = ""
    bff_url: str = DEFAULT_BFF_URL
    timeout: float = DEFAULT_TIMEOUT
    verbose: bool = False

    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            api_url=self.url,
            auth_url=self.auth_url,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )


def resolve_settings(
    *,
    url: str | None = None,
    auth_url: str | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
    bff_url: str | None = None,
    timeout: float | None = None,
    verbose: bool | None = None,
    file_config: dict | None = None,
) -> Settings:
    file_config = load_file_config() if file_config is None else file_config

    def pick(key: str, flag_value, default_value):
        return resolve_setting(flag_value, env_name(key), file_config.get(key), default_value)

    try:
        resolved_timeout = float(pick("timeout", timeout, DEFAULT_TIMEOUT))
    except (TypeError, ValueError) as exc:
        raise ReSimError("CONFIG", "timeout must be a number of seconds", 0) from exc
    if resolved_timeout <= 0 or resolved_timeout > 300:
        raise ReSimError("CONFIG", "timeout must be > 0 and <= 300 seconds", 0)

    return Settings(
        url=str(pick("url", url, DEFAULT_API_URL)),
        auth_url=str(pick("auth-url", auth_url, DEFAULT_AUTH_URL)),
        client_id=str(pick("client-id", client_id, "")),
        client_secret=str(pick("client-secret", client_secret, "")),
        bff_url=str(pick("bff-url", bff_url, DEFAULT_BFF_URL)),
        timeout=resolved_timeout,
        verbose=_as_bool(pick("verbose", verbose, False)),
    )
