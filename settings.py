"""
Configuration for the database bootstrap
Reads the stack's .env file and environment overrides
"""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values

DEFAULT_ENV_FILE = ".env"

# n8n uses the default 'postgres' database
DEFAULT_DATABASES = (
    "langfuse",
    "lightrag",
    "nocodb",
    "postiz",
    "temporal",
    "temporal_visibility",
    "waha",
)

DEFAULT_CONTAINER = "postgres"
DEFAULT_USER = "postgres"
DEFAULT_MAX_WAIT = 60
DEFAULT_PORTAINER_URL = "http://localhost:9000"


class ConfigurationError(ValueError):
    pass


def load_env(path: str = DEFAULT_ENV_FILE) -> Dict[str, str]:
    """Reads a .env file. Missing file gives an empty dict; bare keys without a value are dropped."""
    return {key: value for key, value in dotenv_values(path).items() if value is not None}


def parse_database_list(raw: str) -> Tuple[str, ...]:
    """Splits a comma and/or whitespace separated list, keeping order."""
    return tuple(name for name in re.split(r'[\s,]+', raw.strip()) if name)


@dataclass(frozen=True)
class Settings:
    container: str = DEFAULT_CONTAINER
    user: str = DEFAULT_USER
    max_wait: int = DEFAULT_MAX_WAIT
    databases: Tuple[str, ...] = DEFAULT_DATABASES
    portainer_url: str = DEFAULT_PORTAINER_URL
    portainer_username: Optional[str] = None
    portainer_password: Optional[str] = field(default=None, repr=False)
    portainer_endpoint_id: Optional[int] = None

    @staticmethod
    def from_env(env: Mapping[str, str]) -> "Settings":
        """Builds settings from a mapping such as load_env() merged with os.environ."""
        timeout_raw = env.get("POSTGRES_WAIT_TIMEOUT", "").strip()
        max_wait = DEFAULT_MAX_WAIT
        if timeout_raw:
            try:
                max_wait = int(timeout_raw)
            except ValueError as exc:
                raise ConfigurationError("Invalid POSTGRES_WAIT_TIMEOUT; must be an integer") from exc
            if max_wait < 0:
                raise ConfigurationError("Invalid POSTGRES_WAIT_TIMEOUT; must not be negative")

        databases = DEFAULT_DATABASES
        if "INIT_DB_DATABASES" in env:
            databases = parse_database_list(env["INIT_DB_DATABASES"])

        endpoint_raw = env.get("PORTAINER_ENDPOINT_ID", "").strip()
        endpoint_id = None
        if endpoint_raw:
            try:
                endpoint_id = int(endpoint_raw)
            except ValueError as exc:
                raise ConfigurationError("Invalid PORTAINER_ENDPOINT_ID; must be an integer") from exc

        return Settings(
            container=env.get("POSTGRES_CONTAINER", "").strip() or DEFAULT_CONTAINER,
            user=env.get("POSTGRES_USER", "").strip() or DEFAULT_USER,
            max_wait=max_wait,
            databases=databases,
            portainer_url=(env.get("PORTAINER_URL", "").strip() or DEFAULT_PORTAINER_URL).rstrip('/'),
            portainer_username=env.get("PORTAINER_USERNAME") or None,
            portainer_password=env.get("PORTAINER_PASSWORD") or None,
            portainer_endpoint_id=endpoint_id,
        )

    @staticmethod
    def load(env_file: str = DEFAULT_ENV_FILE) -> "Settings":
        """Process environment overrides values from the .env file."""
        merged = load_env(env_file)
        merged.update(os.environ)
        return Settings.from_env(merged)
