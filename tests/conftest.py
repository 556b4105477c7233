"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# Complete test environment that overrides ALL possible config values
TEST_ENV = {
    # Required connection values
    "DB_URI": "localhost:27017",
    "DB_USERNAME": "test-user",
    "DB_PASSWORD": "test-password",
    # Driver behaviour
    "DB_AUTH_SOURCE": "admin",
    "DB_SERVER_SELECTION_TIMEOUT_MS": "500",
    "DB_RETRY_READS": "true",
    "DB_RETRY_WRITES": "true",
    "DB_CONNECT_ON_INIT": "false",  # No background handshake unless a test asks for one
    # Server settings
    "DB_NAME": "ProjectManagement",
    "WORKFLOW_COLLECTION": "Workflow",
    "WORKFLOW_UPSERT": "true",
    "HTTP_HOST": "127.0.0.1",
    "HTTP_PORT": "8080",
    "LOG_LEVEL": "info",
    "LOG_JSON": "true",
    "OTEL_EXPORTER_ENDPOINT": "",
}


for key, value in TEST_ENV.items():
    os.environ[key] = value
os.environ.pop("DB_OPERATION_TIMEOUT_SECONDS", None)

# Imported after the environment is in place
from diagram_store.adapters.mongo_repository import MongoRepository
from diagram_store.config import MongoSettings
from tests.fixtures.fake_mongo import FakeMongoClient


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables to test defaults before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("DB_OPERATION_TIMEOUT_SECONDS", raising=False)


@pytest.fixture
def mongo_settings() -> MongoSettings:
    return MongoSettings()


@pytest.fixture
def fake_client() -> FakeMongoClient:
    return FakeMongoClient()


@pytest.fixture
def repository(fake_client: FakeMongoClient, mongo_settings: MongoSettings) -> MongoRepository:
    """Single-key repository on ``_id`` over the fake client."""
    return MongoRepository("ProjectManagement", "Workflow", "_id", settings=mongo_settings, client=fake_client)


@pytest.fixture
def composite_repository(fake_client: FakeMongoClient, mongo_settings: MongoSettings) -> MongoRepository:
    """Composite-key repository on ``(board, slot)``."""
    return MongoRepository(
        "ProjectManagement", "Slots", "board", "slot", settings=mongo_settings, client=fake_client
    )


@pytest.fixture
def collection(fake_client: FakeMongoClient):
    return fake_client.get_database("ProjectManagement").get_collection("Workflow")
