"""Configuration models for ciupload."""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, field_validator

from ciupload.errors import ConfigError
from ciupload.types import ArtifactKind


class BackendConfig(BaseModel):
    """Where the analysis backend lives and how to authenticate."""

    base_url: str = "https://api.example.com"
    token_env: str = "CIUPLOAD_TOKEN"
    timeout: str = "30s"
    poll_interval: str = "5s"

    @field_validator("timeout", "poll_interval")
    @classmethod
    def validate_durations(cls, v: str) -> str:
        parse_duration(v)
        return v

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)

    @property
    def poll_seconds(self) -> int:
        return parse_duration(self.poll_interval)


class UploadConfig(BaseModel):
    """Upload batch behaviour."""

    max_concurrency: int = 4
    completion_attempts: int = 3
    completion_backoff: float = 1.0  # seconds, doubled on each retry
    on_failure: Literal["drain", "cancel"] = "drain"
    timeout: str = "60s"  # per artifact transfer

    @field_validator("max_concurrency", "completion_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)


class CIUploadConfig(BaseModel):
    """Main ciupload configuration."""

    backend: BackendConfig = BackendConfig()
    upload: UploadConfig = UploadConfig()
    artifacts: dict[ArtifactKind, str] = {}

    def declared_artifacts(self) -> dict[ArtifactKind, Path]:
        return {kind: Path(path) for kind, path in self.artifacts.items()}


def parse_duration(duration_str: str) -> int:
    """Parse duration string to seconds. Supports: 30s, 5m, 2h, 1d."""
    duration_str = duration_str.strip().lower()
    if not duration_str:
        raise ValueError("Empty duration string")

    multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    unit = duration_str[-1]

    if unit not in multipliers:
        raise ValueError(f"Invalid duration unit: {unit}. Use s, m, h, or d.")

    try:
        value = int(duration_str[:-1])
    except ValueError:
        raise ValueError(f"Invalid duration value: {duration_str[:-1]}")

    return value * multipliers[unit]


def load_config(path: Path) -> CIUploadConfig:
    """Load configuration from YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return CIUploadConfig(**data)


def get_token(config: BackendConfig, environ: dict[str, str] | None = None) -> str:
    """Read the API token from the configured environment variable."""
    env = os.environ if environ is None else environ
    token = env.get(config.token_env)
    if not token:
        raise ConfigError(f"{config.token_env} not set")
    return token


def get_config_template() -> str:
    """Get the default configuration template."""
    return """# ciupload configuration

backend:
  base_url: https://api.example.com
  token_env: CIUPLOAD_TOKEN  # Environment variable holding the API token
  timeout: 30s  # Per-request timeout (s, m, h, d)
  poll_interval: 5s  # Delay between status checks with --wait

upload:
  max_concurrency: 4  # Slots transferred in parallel
  completion_attempts: 3  # Tries per upload acknowledgment
  completion_backoff: 1.0  # Seconds before the first retry, doubled each time
  # What happens to in-flight transfers when one slot fails:
  #   drain  - let them finish, acknowledge only the ones that succeeded
  #   cancel - cancel them immediately
  on_failure: drain
  timeout: 60s  # Per-artifact transfer timeout

# Default artifact paths. Command line flags override these.
artifacts:
  check-results: .ciupload/check-results.json
  # from-file: specs/openapi.base.yaml
  # to-file: specs/openapi.yaml
  ci-event: .ciupload/context.json
"""
