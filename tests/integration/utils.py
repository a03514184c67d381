"""
Utility functions for integration tests.

Helpers for checking service health and cleaning up test data.
"""

import socket

from tests.integration.test_config import REDIS_HOST, REDIS_PORT, REDIS_URL


def check_port_open(host: str, port: int, timeout: float = 2.0) -> bool:
    """Check if a TCP port is open and accepting connections."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        result = sock.connect_ex((host, port))
        sock.close()
        return result == 0
    except OSError:
        return False


def check_redis_health() -> bool:
    """Check if Redis is accessible."""
    return check_port_open(REDIS_HOST, REDIS_PORT)


async def cleanup_redis_keys(prefix: str) -> None:
    """Delete Redis keys with a given prefix."""
    import redis.asyncio as redis

    r = redis.from_url(REDIS_URL, decode_responses=True)
    try:
        keys = await r.keys(f"{prefix}*")
        if keys:
            await r.delete(*keys)
    finally:
        await r.aclose()
