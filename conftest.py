import os

import pytest


def pytest_configure(config):
    """Set up test environment variables before any tests run."""
    os.environ.setdefault("REDIS_HOST", "localhost")
    os.environ.setdefault("REDIS_PORT", "6379")


@pytest.fixture(autouse=True)
def clear_digest_auth_env(monkeypatch):
    """Remove DIGEST_AUTH_* variables so the host environment cannot leak into config tests."""
    for name in list(os.environ):
        if name.startswith("DIGEST_AUTH_"):
            monkeypatch.delenv(name, raising=False)
    yield
