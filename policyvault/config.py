"""Configuration management for the PolicyVault service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_database_path

logger = logging.getLogger("policyvault.config")

DEFAULT_TOKEN_TTL = timedelta(hours=1)
DEFAULT_JWT_ALGORITHM = "HS256"

_ENV_KEYS = {
    "database_path": "POLICYVAULT_DB_PATH",
    "jwt_secret": "POLICYVAULT_JWT_SECRET",
    "jwt_algorithm": "POLICYVAULT_JWT_ALGORITHM",
    "token_ttl_minutes": "POLICYVAULT_TOKEN_TTL_MINUTES",
    "cors_origins": "POLICYVAULT_CORS_ORIGINS",
    "log_level": "POLICYVAULT_LOG_LEVEL",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API service."""

    database_path: Path
    jwt_secret: str
    jwt_algorithm: str = DEFAULT_JWT_ALGORITHM
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_db_path = data.get("database_path")
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = str(data.get("jwt_secret") or "").strip()
        if not secret:
            logger.warning(
                "No JWT secret configured; generated a per-process secret. Tokens will not"
                " survive a restart. Set POLICYVAULT_JWT_SECRET in production."
            )
            secret = secrets.token_urlsafe(48)

        ttl_raw = data.get("token_ttl_minutes")
        if ttl_raw in (None, ""):
            token_ttl = DEFAULT_TOKEN_TTL
        else:
            try:
                minutes = int(str(ttl_raw))
            except ValueError as exc:
                raise ValueError(f"token_ttl_minutes must be an integer, got {ttl_raw!r}") from exc
            if minutes <= 0:
                raise ValueError("token_ttl_minutes must be positive")
            token_ttl = timedelta(minutes=minutes)

        return Settings(
            database_path=database_path,
            jwt_secret=secret,
            jwt_algorithm=str(data.get("jwt_algorithm") or DEFAULT_JWT_ALGORITHM),
            token_ttl=token_ttl,
            cors_origins=_parse_origins(data.get("cors_origins")),
            log_level=str(data.get("log_level") or "INFO").upper(),
        )


def _parse_origins(value: object) -> Tuple[str, ...]:
    if value is None or value == "":
        return ("*",)
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError("cors_origins must be a comma separated string or a list")
    origins = tuple(item.strip() for item in items if item.strip())
    return origins or ("*",)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file."""

    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def _load_yaml(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(
    environ: Mapping[str, str] | None = None,
    *,
    config_path: Path | None = None,
) -> Settings:
    """Load settings from an optional YAML file, overridden by environment variables."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("POLICYVAULT_CONFIG"))

    data: Dict[str, object] = {}
    base_path: Path | None = None
    if path is not None:
        data.update(_load_yaml(path))
        base_path = path.parent

    for key, env_key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            data[key] = value.strip()

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["DEFAULT_TOKEN_TTL", "Settings", "load_settings", "resolve_config_path"]
