"""
Configuration management for DNS Orchestrator.

This module handles loading and validating configuration from TOML files
and command-line arguments. Configuration priority (high to low):
1. Command-line arguments
2. Configuration file
3. Default values
"""

from __future__ import annotations

import copy
import logging
import os
import tomllib
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError, model_validator
from pydantic_core import PydanticCustomError

from dns_orchestrator.logging_config import DATE_FORMAT, LOG_FORMAT
from dns_orchestrator.providers.http_client import HttpSettings

if TYPE_CHECKING:
    import argparse
    from typing import Any, Final, Self


DEFAULT_CONFIG_FILE: Final[str] = "config.toml"
DEFAULT_DATA_DIR: Final[str] = "~/.dns-orchestrator"
DEFAULT_PASSWORD_ENV: Final[str] = "DNS_ORCHESTRATOR_PASSWORD"

# Custom error types whose message is shown as-is
_CUSTOM_ERROR_TYPES: Final[frozenset[str]] = frozenset(
    {"http_config_error", "auth_config_error"},
)

# Configure basic logging for early startup messages.
# setup_logging() reconfigures the "dns_orchestrator" logger later; until then
# messages go to the console only, as the log file path is not parsed yet.
logger_basic = logging.getLogger(__name__)
logger_basic.setLevel(logging.DEBUG)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
logger_basic.addHandler(handler)
logger_basic.propagate = False


class ConfigValidationError(Exception):
    """
    Exception raised when configuration loading or validation fails.

    Attributes
    ----------
    message : str
        Human-readable error message describing the validation failures.
    config_path : Path | None
        Path to the configuration file that failed validation.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        self.message = message
        self.config_path = config_path
        super().__init__(message)


# Configuration models (Pydantic with type validation and coercion)


class ServerConfig(BaseModel):
    """
    HTTP adapter configuration.

    Attributes
    ----------
    host : str
        Host address to bind to.
    port : int
        Port number to listen on.
    """

    host: str = "127.0.0.1"
    port: int = 38080


class AuthConfig(BaseModel):
    """
    HTTP adapter authentication.

    Attributes
    ----------
    enabled : bool
        Whether bearer-token authentication is enabled.
    tokens : list[str]
        Accepted tokens.
    """

    enabled: bool = False
    tokens: list[str] = []

    @model_validator(mode="after")
    def check_tokens_when_enabled(self) -> Self:
        """
        Validate that enabled authentication has at least one token.

        Raises
        ------
        PydanticCustomError
            If authentication is enabled without tokens.
        """
        if self.enabled and not self.tokens:
            err_type = "auth_config_error"
            raise PydanticCustomError(
                err_type,
                "Authentication is enabled but no tokens are configured",
            )
        return self


class CredentialBackend(StrEnum):
    """Credential store implementation."""

    FILE = "file"
    SQLITE = "sqlite"


class StorageConfig(BaseModel):
    """
    Persistence configuration.

    Attributes
    ----------
    data_dir : str
        Directory holding accounts and credentials.
    credential_backend : CredentialBackend
        ``file`` (plaintext JSON) or ``sqlite`` (encrypted rows).
    password_env : str
        Environment variable holding the SQLite encryption password.
    """

    data_dir: str = DEFAULT_DATA_DIR
    credential_backend: CredentialBackend = CredentialBackend.FILE
    password_env: str = DEFAULT_PASSWORD_ENV

    @property
    def data_dir_as_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    def get_password(self) -> str | None:
        """Read the encryption password from the configured variable."""
        return os.environ.get(self.password_env) or None


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Attributes
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    file_enabled : bool
        Whether to log to file.
    file_path : str
        Path to the log file.
    """

    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = f"{DEFAULT_DATA_DIR}/dns-orchestrator.log"

    @property
    def file_path_as_path(self) -> Path:
        """
        Get the log file path as a Path object.

        Returns
        -------
        Path
            The resolved log file path.
        """
        return Path(self.file_path).expanduser()


class Config(BaseModel):
    """
    Application configuration.

    Attributes
    ----------
    server : ServerConfig
        HTTP adapter configuration.
    auth : AuthConfig
        HTTP adapter authentication.
    storage : StorageConfig
        Persistence configuration.
    http : HttpSettings
        Provider HTTP timeouts and retries.
    logging : LoggingConfig
        Logging configuration.
    """

    server: ServerConfig = ServerConfig()
    auth: AuthConfig = AuthConfig()
    storage: StorageConfig = StorageConfig()
    http: HttpSettings = HttpSettings()
    logging: LoggingConfig = LoggingConfig()


def _format_validation_errors(
    error: ValidationError,
    config_path: Path | None,
) -> str:
    """
    Format Pydantic validation errors into human-readable messages.

    Parameters
    ----------
    error : ValidationError
        Pydantic validation error.
    config_path : Path | None
        Path to the configuration file.

    Returns
    -------
    str
        One line per offending field, prefixed ``[section.field]``.
    """
    lines: list[str] = []

    if config_path:
        lines.append(f'Configuration error in "{config_path}":')
    else:
        lines.append("Configuration error:")

    for err in error.errors():
        field_path = ".".join(str(loc) for loc in err["loc"])
        error_type = err["type"]

        if error_type in _CUSTOM_ERROR_TYPES:
            lines.append(f"  [{field_path}]: {err['msg']}.")
        else:
            error_input = err["input"]
            value_repr = (
                f'"{error_input}"' if isinstance(error_input, str) else repr(error_input)
            )
            lines.append(
                f"  [{field_path}]: Expected {_get_expected_type(error_type)}, "
                f"got {type(error_input).__name__} (value: {value_repr}). {err['msg']}.",
            )

    return "\n".join(lines)


def _get_expected_type(error_type: str) -> str:
    """
    Get human-readable expected type from Pydantic error type.

    Parameters
    ----------
    error_type : str
        Pydantic error type string.

    Returns
    -------
    str
        Human-readable type name.
    """
    type_mapping = {
        "int_type": "int",
        "int_parsing": "int",
        "float_type": "float",
        "float_parsing": "float",
        "bool_type": "bool",
        "bool_parsing": "bool",
        "string_type": "str",
        "list_type": "list",
        "enum": "one of the allowed values",
    }
    return type_mapping.get(error_type, error_type)


def load_config_from_file(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a TOML file.

    Parameters
    ----------
    config_path : Path
        Path to the configuration file.

    Returns
    -------
    dict[str, Any]
        Parsed configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    tomllib.TOMLDecodeError
        If the configuration file is not valid TOML.
    """
    with config_path.open("rb") as f:
        return tomllib.load(f)


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Parameters
    ----------
    base : dict[str, Any]
        Base configuration.
    override : dict[str, Any]
        Override configuration (takes precedence).

    Returns
    -------
    dict[str, Any]
        Merged configuration.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result


def dict_to_config(data: dict[str, Any], config_path: Path | None = None) -> Config:
    """
    Validate a configuration dictionary.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Returns
    -------
    Config
        Configuration object.

    Raises
    ------
    ConfigValidationError
        If validation fails.
    """
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        msg = _format_validation_errors(e, config_path)
        raise ConfigValidationError(msg, config_path) from e


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is not None:
        return path.expanduser()
    default_config = Path(DEFAULT_CONFIG_FILE)
    return default_config if default_config.exists() else None


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}

    if getattr(args, "host", None) is not None:
        overrides.setdefault("server", {})["host"] = args.host
    if getattr(args, "port", None) is not None:
        overrides.setdefault("server", {})["port"] = args.port
    if getattr(args, "data_dir", None) is not None:
        overrides.setdefault("storage", {})["data_dir"] = str(args.data_dir)
    if getattr(args, "log_level", None) is not None:
        overrides.setdefault("logging", {})["level"] = args.log_level

    return overrides


def load_config(args: argparse.Namespace) -> Config:
    """
    Load configuration from file and command-line arguments.

    Priority (high to low):
    1. Command-line arguments
    2. Configuration file (``--config``, else ``config.toml`` if present)
    3. Default values

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments. Only the global options and the
        ``serve`` options are read.

    Returns
    -------
    Config
        Loaded configuration.

    Raises
    ------
    ConfigValidationError
        If the file is missing or unparseable, or the merged
        configuration is invalid.
    """
    config_dict: dict[str, Any] = {}

    config_path = _resolve_config_path(getattr(args, "config", None))
    if config_path is not None:
        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise ConfigValidationError(msg, config_path)
        logger_basic.debug('Loading configuration from "%s".', config_path)
        try:
            config_dict = load_config_from_file(config_path)
        except tomllib.TOMLDecodeError as e:
            msg = f'Failed to parse configuration file "{config_path}": {e}'
            raise ConfigValidationError(msg, config_path) from e

    overrides = _cli_overrides(args)
    if overrides:
        config_dict = merge_config(config_dict, overrides)

    return dict_to_config(config_dict, config_path)
