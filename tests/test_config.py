"""Unit tests for the config module."""

import os
from unittest.mock import patch

from pydantic import ValidationError
import pytest

from diagram_store.adapters.mongo_repository import MongoRepository
from diagram_store.config import MongoSettings, Settings, load_mongo_settings
from diagram_store.domain.errors import ConfigurationError


pytestmark = pytest.mark.unit


class TestMongoSettings:
    """Connection settings loading and validation."""

    def test_required_values_loaded_from_environment(self):
        settings = MongoSettings()
        assert settings.uri == "localhost:27017"
        assert settings.username == "test-user"
        assert settings.password == "test-password"
        assert settings.auth_source == "admin"

    def test_password_hidden_from_repr(self):
        assert "test-password" not in repr(MongoSettings())

    @pytest.mark.parametrize("missing", ["DB_URI", "DB_USERNAME", "DB_PASSWORD"])
    def test_missing_credential_raises_validation_error(self, monkeypatch, missing):
        monkeypatch.delenv(missing)
        with pytest.raises(ValidationError, match=missing):
            MongoSettings(_env_file=None)

    def test_blank_credential_counts_as_missing(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "   ")
        with pytest.raises(ValidationError, match="DB_PASSWORD"):
            MongoSettings(_env_file=None)

    @patch.dict(os.environ, {}, clear=True)
    def test_load_mongo_settings_wraps_failure_in_configuration_error(self):
        with pytest.raises(ConfigurationError, match="DB_URI, DB_USERNAME, DB_PASSWORD"):
            load_mongo_settings()

    def test_host_port_uri_gets_scheme(self):
        assert MongoSettings().connection_uri() == "mongodb://localhost:27017"

    def test_full_uri_kept_as_is(self, monkeypatch):
        monkeypatch.setenv("DB_URI", "mongodb+srv://cluster0.example.net")
        assert MongoSettings().connection_uri() == "mongodb+srv://cluster0.example.net"

    def test_client_options_carry_credentials_and_retry_flags(self, monkeypatch):
        monkeypatch.setenv("DB_RETRY_WRITES", "false")
        options = MongoSettings().client_options()
        assert options["username"] == "test-user"
        assert options["password"] == "test-password"
        assert options["authSource"] == "admin"
        assert options["serverSelectionTimeoutMS"] == 500
        assert options["retryReads"] is True
        assert options["retryWrites"] is False

    def test_operation_timeout_defaults_to_none(self):
        assert MongoSettings().operation_timeout_seconds is None

    def test_operation_timeout_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("DB_OPERATION_TIMEOUT_SECONDS", "0")
        with pytest.raises(ValidationError):
            MongoSettings()


class TestRepositoryConfiguration:
    """The adapter refuses to construct without credentials."""

    @pytest.mark.parametrize("missing", ["DB_URI", "DB_USERNAME", "DB_PASSWORD"])
    def test_repository_construction_fails_fast(self, monkeypatch, fake_client, missing):
        monkeypatch.delenv(missing)
        with pytest.raises(ConfigurationError, match=missing):
            MongoRepository("ProjectManagement", "Workflow", "_id", client=fake_client)
        assert fake_client.close_calls == 0


class TestServerSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.db_name == "ProjectManagement"
        assert settings.workflow_collection == "Workflow"
        assert settings.workflow_upsert is True
        assert settings.is_trace_export_enabled() is False

    def test_port_bounds(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "70000")
        with pytest.raises(ValidationError):
            Settings()

    def test_trace_export_enabled_with_endpoint(self, monkeypatch):
        monkeypatch.setenv("OTEL_EXPORTER_ENDPOINT", "http://collector:4318/v1/traces")
        assert Settings().is_trace_export_enabled() is True
