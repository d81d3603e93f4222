"""Configure pytest fixtures and environment for RecordLens tests."""

import os

import pytest
from dotenv import load_dotenv

from recordlens.core import config as config_module
from recordlens.core.config import DisplayConfig
from recordlens.crypto.envelope import EnvelopeDecoder

TEST_SECRET = "0123456789abcdef0123456789abcdef"
OTHER_SECRET = "fedcba9876543210"
FIXED_IV = bytes(range(16))

_MANAGED_ENV = (
    "ENCRYPTION_KEY",
    "NEXT_PUBLIC_ENCRYPTION_KEY",
    "API_BASE_URL",
    "API_TOKEN",
    "DISPLAY_TIMEZONE",
    "TIMESTAMP_FORMAT",
    "AUDIT_TYPED_DIFF",
    "ENCRYPTED_FIELDS",
    "API_RETRY_ATTEMPTS",
    "API_RETRY_BACKOFF_MAX",
    "API_BREAKER_THRESHOLD",
    "API_BREAKER_RECOVERY_SECONDS",
)


def pytest_sessionstart(session):
    """Load environment variables from a local .env, if any."""
    load_dotenv()


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Give every test the same known configuration and fresh global state."""
    for name in _MANAGED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_SECRET)
    monkeypatch.setenv("API_BASE_URL", "http://backend.test")
    monkeypatch.setenv("API_TOKEN", "test-token")
    # .env files in the working directory must not leak into tests
    monkeypatch.chdir(os.path.dirname(__file__))

    config_module.reset_settings()
    yield
    config_module.reset_settings()


@pytest.fixture
def decoder():
    return EnvelopeDecoder(TEST_SECRET)


@pytest.fixture
def display():
    return DisplayConfig(timezone="UTC")
