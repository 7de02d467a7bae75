"""Tests for configuration parsing."""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from ciupload.config import (
    BackendConfig,
    CIUploadConfig,
    get_config_template,
    get_token,
    load_config,
    parse_duration,
)
from ciupload.errors import ConfigError
from ciupload.types import ArtifactKind


class TestParseDuration:
    def test_seconds(self):
        assert parse_duration("30s") == 30
        assert parse_duration("1s") == 1

    def test_minutes(self):
        assert parse_duration("5m") == 300

    def test_hours(self):
        assert parse_duration("2h") == 7200

    def test_days(self):
        assert parse_duration("1d") == 86400

    def test_invalid_unit(self):
        with pytest.raises(ValueError, match="Invalid duration unit"):
            parse_duration("10x")

    def test_invalid_value(self):
        with pytest.raises(ValueError, match="Invalid duration value"):
            parse_duration("abcs")

    def test_empty(self):
        with pytest.raises(ValueError, match="Empty duration"):
            parse_duration("")


class TestConfigTemplate:
    def test_template_is_valid_yaml(self):
        import yaml

        data = yaml.safe_load(get_config_template())
        assert "backend" in data
        assert "upload" in data
        assert "artifacts" in data

    def test_template_loads_as_config(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(get_config_template())
            f.flush()

            config = load_config(Path(f.name))

            assert config.upload.on_failure == "drain"
            assert config.backend.token_env == "CIUPLOAD_TOKEN"
            assert ArtifactKind.CHECK_RESULTS in config.artifacts


class TestLoadConfig:
    def test_empty_file_uses_defaults(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("")
            f.flush()

            config = load_config(Path(f.name))

            assert config.upload.max_concurrency == 4
            assert config.upload.completion_attempts == 3
            assert config.backend.timeout_seconds == 30
            assert config.upload.timeout_seconds == 60
            assert config.artifacts == {}

    def test_load_full_config(self):
        config_yaml = """
backend:
  base_url: https://backend.example.com/
  token_env: MY_TOKEN
  timeout: 2m

upload:
  max_concurrency: 2
  completion_attempts: 5
  completion_backoff: 0.5
  on_failure: cancel
  timeout: 90s

artifacts:
  from-file: specs/base.yaml
  to-file: specs/openapi.yaml
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(config_yaml)
            f.flush()

            config = load_config(Path(f.name))

            assert config.backend.base_url == "https://backend.example.com"
            assert config.backend.timeout_seconds == 120
            assert config.upload.on_failure == "cancel"
            assert config.upload.completion_backoff == 0.5
            assert config.upload.timeout_seconds == 90
            assert config.declared_artifacts() == {
                ArtifactKind.FROM_FILE: Path("specs/base.yaml"),
                ArtifactKind.TO_FILE: Path("specs/openapi.yaml"),
            }

    def test_unknown_artifact_kind(self):
        with pytest.raises(ValidationError):
            CIUploadConfig(artifacts={"coverage": "cov.xml"})

    def test_invalid_failure_policy(self):
        with pytest.raises(ValidationError):
            CIUploadConfig(upload={"on_failure": "retry"})

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError, match="at least 1"):
            CIUploadConfig(upload={"max_concurrency": 0})

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError, match="Invalid duration unit"):
            BackendConfig(timeout="10x")

    def test_broken_yaml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("backend:\n  base_url: [unclosed\n")
            f.flush()

            with pytest.raises(ConfigError, match="not valid YAML"):
                load_config(Path(f.name))

    def test_top_level_must_be_mapping(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("- backend\n- upload\n")
            f.flush()

            with pytest.raises(ConfigError, match="must contain a mapping"):
                load_config(Path(f.name))


class TestGetToken:
    def test_reads_configured_variable(self):
        config = BackendConfig(token_env="MY_TOKEN")
        assert get_token(config, {"MY_TOKEN": "abc"}) == "abc"

    def test_missing_token(self):
        with pytest.raises(ConfigError, match="CIUPLOAD_TOKEN not set"):
            get_token(BackendConfig(), {})
