"""Configuration management with validation.

Connection settings for the ZSphere management node and operator settings
are loaded from environment variables and validated at load time. All
violations are reported together.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

__all__ = [
    "ConfigurationError",
    "ConnectionConfig",
    "OperatorConfig",
]

# Configuration constants with documented bounds
DEFAULT_API_PORT = 8080
MIN_API_PORT = 1
MAX_API_PORT = 65535

DEFAULT_STATE_DIR = ".zsi"
DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Size limits for user-supplied files
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_STATE_FILE_SIZE_BYTES = 4 * 1024 * 1024  # 4MB max state file


def _get_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer: {value}") from e


def _get_bool(key: str, default: bool) -> bool:
    value = os.environ.get(key, "").lower()
    if not value:
        return default
    return value in ("true", "1", "yes")


@dataclass(frozen=True)
class ConnectionConfig:
    """How to reach and authenticate against the management node.

    Exactly one authentication method must be complete: account
    name/password, or AccessKey id/secret. AccessKey is preferred when
    both are present.
    """

    host: str
    port: int = DEFAULT_API_PORT
    account_name: str | None = None
    account_password: str | None = field(default=None, repr=False)
    access_key_id: str | None = None
    access_key_secret: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.host:
            errors.append(
                "ZSPHERE_HOST is required. Set the management node host or IP address."
            )

        if not (MIN_API_PORT <= self.port <= MAX_API_PORT):
            errors.append(f"ZSPHERE_PORT must be between {MIN_API_PORT} and {MAX_API_PORT}")

        if not self.uses_access_key and not self.uses_account:
            errors.append(
                "Missing ZSphere authorization: set ZSPHERE_ACCESS_KEY_ID and "
                "ZSPHERE_ACCESS_KEY_SECRET, or ZSPHERE_ACCOUNT_NAME and ZSPHERE_ACCOUNT_PASSWORD"
            )

        if errors:
            error_msg = "Connection configuration failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def uses_access_key(self) -> bool:
        return bool(self.access_key_id and self.access_key_secret)

    @property
    def uses_account(self) -> bool:
        return bool(self.account_name and self.account_password)

    @property
    def endpoint(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> ConnectionConfig:
        """Load connection settings from the environment.

        Environment Variables:
            ZSPHERE_HOST: Management node host or IP (required)
            ZSPHERE_PORT: API port (default: 8080)
            ZSPHERE_ACCOUNT_NAME / ZSPHERE_ACCOUNT_PASSWORD: account auth
            ZSPHERE_ACCESS_KEY_ID / ZSPHERE_ACCESS_KEY_SECRET: AccessKey auth
        """
        return cls(
            host=os.environ.get("ZSPHERE_HOST", ""),
            port=_get_int("ZSPHERE_PORT", DEFAULT_API_PORT),
            account_name=os.environ.get("ZSPHERE_ACCOUNT_NAME") or None,
            account_password=os.environ.get("ZSPHERE_ACCOUNT_PASSWORD") or None,
            access_key_id=os.environ.get("ZSPHERE_ACCESS_KEY_ID") or None,
            access_key_secret=os.environ.get("ZSPHERE_ACCESS_KEY_SECRET") or None,
        )


@dataclass(frozen=True)
class OperatorConfig:
    """Local operator settings."""

    state_dir: Path = field(default_factory=lambda: Path(DEFAULT_STATE_DIR))
    log_level: str = DEFAULT_LOG_LEVEL
    json_logs: bool = True
    client_factory: str | None = None

    def __post_init__(self) -> None:
        errors: list[str] = []

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"ZSI_LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}"
            )

        if self.state_dir.exists() and not self.state_dir.is_dir():
            errors.append(f"ZSI_STATE_DIR is not a directory: {self.state_dir}")

        if self.client_factory is not None and ":" not in self.client_factory:
            errors.append(
                f"ZSI_CLIENT_FACTORY must be in 'module:callable' form: {self.client_factory}"
            )

        if errors:
            error_msg = "Operator configuration failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    def state_path(self, instance_name: str) -> Path:
        """Path of the stored state file for an instance."""
        return self.state_dir / f"{instance_name}.state.json"

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Load operator settings from the environment.

        Environment Variables:
            ZSI_STATE_DIR: Directory for stored state files (default: .zsi)
            ZSI_LOG_LEVEL: Log level (default: INFO)
            ZSI_JSON_LOGS: Emit JSON logs (default: true)
            ZSI_CLIENT_FACTORY: `module:callable` building the Cloud API client
        """
        return cls(
            state_dir=Path(os.environ.get("ZSI_STATE_DIR", DEFAULT_STATE_DIR)),
            log_level=os.environ.get("ZSI_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            json_logs=_get_bool("ZSI_JSON_LOGS", True),
            client_factory=os.environ.get("ZSI_CLIENT_FACTORY") or None,
        )
