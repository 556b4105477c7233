"""Centralized configuration for diagram-store using Pydantic Settings."""

from typing import Literal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from diagram_store.domain.errors import ConfigurationError


class MongoSettings(BaseSettings):
    """Connection settings for the document store, read from ``DB_*`` variables.

    ``DB_URI``, ``DB_USERNAME`` and ``DB_PASSWORD`` are required. ``DB_URI`` is
    either ``host[:port]`` or a full ``mongodb://`` / ``mongodb+srv://`` URI.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    uri: str = Field(default="", description="MongoDB host[:port] or full connection URI")
    username: str = Field(default="", description="MongoDB username")
    password: str = Field(default="", repr=False, description="MongoDB password")
    auth_source: str = Field(default="admin", description="Database holding the user's credentials")

    server_selection_timeout_ms: int = Field(
        default=5000, ge=1, description="How long the driver waits for a usable server before failing"
    )
    operation_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Default per-call timeout; unset means no adapter-level timeout"
    )
    retry_reads: bool = Field(default=True, description="Let the driver retry a read once after a network error")
    retry_writes: bool = Field(default=True, description="Let the driver retry a write once after a network error")
    connect_on_init: bool = Field(
        default=True, description="Start a background handshake when a repository is created inside a running loop"
    )

    @model_validator(mode="after")
    def _check_credentials(self) -> "MongoSettings":
        missing = [
            f"DB_{name.upper()}"
            for name in ("uri", "username", "password")
            if not getattr(self, name).strip()
        ]
        if missing:
            raise ValueError(f"Missing required MongoDB settings: {', '.join(missing)}")
        return self

    def connection_uri(self) -> str:
        """Return a URI the driver accepts; credentials are passed separately."""
        if self.uri.startswith(("mongodb://", "mongodb+srv://")):
            return self.uri
        return f"mongodb://{self.uri}"

    def client_options(self) -> dict:
        return {
            "username": self.username,
            "password": self.password,
            "authSource": self.auth_source,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "retryReads": self.retry_reads,
            "retryWrites": self.retry_writes,
        }


def load_mongo_settings() -> MongoSettings:
    """Load ``MongoSettings`` from the environment.

    Raises:
        ConfigurationError: if any required value is absent or invalid
    """
    try:
        return MongoSettings()
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


class Settings(BaseSettings):
    """Server configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage binding
    db_name: str = Field(default="ProjectManagement", min_length=1, description="Database holding workflows")
    workflow_collection: str = Field(default="Workflow", min_length=1, description="Collection of canvas components")
    workflow_upsert: bool = Field(default=True, description="Insert components on update when they do not exist yet")

    # Server settings
    http_host: str = Field(default="127.0.0.1", description="HTTP server host")
    http_port: int = Field(default=8080, ge=1, le=65535, description="HTTP server port")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # Tracing export
    otel_exporter_endpoint: str = Field(default="", description="OTLP collector endpoint; empty disables export")
    otel_exporter_protocol: Literal["grpc", "http"] = Field(default="http", description="OTLP transport")
    otel_exporter_timeout_seconds: int = Field(default=10, ge=1, description="OTLP export timeout")

    def is_trace_export_enabled(self) -> bool:
        return bool(self.otel_exporter_endpoint.strip())
