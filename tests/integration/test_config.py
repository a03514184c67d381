"""
Test configuration for integration tests.

Connection settings for the services the integration tests talk to.
"""

import os

# Service endpoints
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_URL = f"redis://{REDIS_HOST}:{REDIS_PORT}"

# Key prefix for test data so cleanup never touches other keys
TEST_REDIS_PREFIX = "test:integration:digest_auth"
