"""
Pytest configuration and fixtures for integration tests.

Integration tests need a running Redis server (REDIS_HOST, REDIS_PORT)
and are skipped when it is not reachable.
"""

import uuid

import pytest

from tests.integration.test_config import REDIS_URL, TEST_REDIS_PREFIX
from tests.integration.utils import check_redis_health, cleanup_redis_keys


@pytest.fixture(scope="session")
def redis_available() -> bool:
    """Skip the test if Redis is not reachable."""
    if not check_redis_health():
        pytest.skip(f"Redis not available at {REDIS_URL}. Start a local Redis server or set REDIS_HOST and REDIS_PORT")
    return True


@pytest.fixture
async def redis_prefix(redis_available):
    """Unique key prefix per test, removed afterwards."""
    prefix = f"{TEST_REDIS_PREFIX}:{uuid.uuid4().hex[:8]}"
    yield prefix
    await cleanup_redis_keys("{" + prefix + "}")
