"""Configuration loading for the images queue pipeline."""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import ConfigurationError

CONFIG_SECTION = "QueueProcessing"
ENV_PREFIX = "IMAGES_QUEUE_"
PLACEHOLDER_CONNECTION_STRING = "REPLACE_ME"

# Connection string key (lower-cased) -> boto3 client/session argument
CONNECTION_KEYS: Dict[str, str] = {
    "endpointurl": "endpoint_url",
    "region": "region_name",
    "accesskeyid": "aws_access_key_id",
    "secretaccesskey": "aws_secret_access_key",
    "sessiontoken": "aws_session_token",
    "profile": "profile_name",
}

# Keys used by the original appsettings layout
KEY_ALIASES: Dict[str, str] = {
    "resized_images_container": "result_container",
    "staging_images_container": "staging_container",
}

SESSION_KEYS = ("aws_access_key_id", "aws_secret_access_key", "aws_session_token", "region_name", "profile_name")


class PipelineConfig(BaseModel):
    """Configuration for producer and consumer sweeps."""

    connection_string: str = ""
    queue_name: str = "images"
    staging_container: str = "stagingimages"
    result_container: str = "resizedimages"
    min_size_bytes: int = Field(default=1, ge=0)
    max_size_bytes: int = Field(default=20 * 1024 * 1024, ge=1)
    batch_size: int = Field(default=32, ge=1, le=32)
    concurrency: int = Field(default=1, ge=1)
    lease_seconds: int = Field(default=60, ge=1)
    max_delivery_count: int = Field(default=5, ge=0)
    poison_queue_suffix: str = "-poison"
    output_suffix: str = "-50"
    max_attempts: int = Field(default=3, ge=1)
    debug: bool = False

    @model_validator(mode="after")
    def _check_size_bounds(self) -> "PipelineConfig":
        if self.min_size_bytes > self.max_size_bytes:
            raise ValueError(
                f"min_size_bytes ({self.min_size_bytes}) exceeds max_size_bytes ({self.max_size_bytes})"
            )
        return self

    @property
    def poison_queue_name(self) -> str:
        return f"{self.queue_name}{self.poison_queue_suffix}"

    def require_connection(self) -> None:
        """
        Validate that credentials are present before any operation begins.

        Raises:
            ConfigurationError: If the connection string is missing or still the placeholder
        """
        value = self.connection_string.strip()
        if not value or value == PLACEHOLDER_CONNECTION_STRING:
            raise ConfigurationError(
                "ConnectionString is not configured. Set QueueProcessing:ConnectionString "
                f"in appsettings.json.user or the {ENV_PREFIX}CONNECTION_STRING environment variable."
            )
        parse_connection_string(value)


def parse_connection_string(connection_string: str) -> Dict[str, str]:
    """
    Parse "Key=Value;Key=Value" credentials into boto3 keyword arguments.

    Args:
        connection_string: e.g. "EndpointUrl=http://localhost:4566;Region=us-east-1"

    Returns:
        Mapping of boto3 argument names to values

    Raises:
        ConfigurationError: On malformed segments or unknown keys
    """
    parsed: Dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not value.strip():
            raise ConfigurationError(f"Malformed connection string segment: '{key.strip()}'")
        arg_name = CONNECTION_KEYS.get(key.strip().lower())
        if arg_name is None:
            raise ConfigurationError(f"Unknown connection string key: '{key.strip()}'")
        parsed[arg_name] = value.strip()
    if not parsed:
        raise ConfigurationError("Connection string contains no settings")
    return parsed


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _read_section(path: Path) -> Dict[str, Any]:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    section = document.get(CONFIG_SECTION, document) if isinstance(document, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(f"{path} must contain a '{CONFIG_SECTION}' object")
    normalized: Dict[str, Any] = {}
    for key, value in section.items():
        name = _snake_case(key)
        normalized[KEY_ALIASES.get(name, name)] = value
    return normalized


def _read_environment(environ: Dict[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field_name in PipelineConfig.model_fields:
        env_value = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if env_value is not None:
            values[field_name] = env_value
    return values


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> PipelineConfig:
    """
    Load configuration from JSON files, environment variables and overrides.

    Later sources win: ``appsettings.json``, ``appsettings.json.user``,
    ``IMAGES_QUEUE_*`` environment variables, explicit keyword overrides.
    A missing base file is not an error; an explicitly named one is.

    Raises:
        ConfigurationError: If a file is unreadable or a value is invalid
    """
    values: Dict[str, Any] = {}
    explicit = path is not None
    base_path = Path(path) if path is not None else Path("appsettings.json")

    if base_path.is_file():
        values.update(_read_section(base_path))
    elif explicit:
        raise ConfigurationError(f"Configuration file not found: {base_path}")

    user_path = base_path.with_name(base_path.name + ".user")
    if user_path.is_file():
        values.update(_read_section(user_path))

    values.update(_read_environment(dict(os.environ) if environ is None else environ))
    values.update({key: value for key, value in overrides.items() if value is not None})

    unknown = sorted(set(values) - set(PipelineConfig.model_fields))
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    try:
        return PipelineConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
