"""
Redis-based nonce store for Digest Authentication.

Lets several service instances share nonces so a challenge issued by one
instance can be answered on another. Layout:
- {<prefix>}:nonce:<value>  hash with value, opaque, realm, created_at, nonce_count
- {<prefix>}:nonces         sorted set of nonce values scored by created_at

The prefix is a hash tag, so all keys of one store live in the same Redis
Cluster slot and the scripts may derive record keys from the index.

Every multi-step operation runs as a Lua script, so it is atomic on the
Redis server even with many concurrent clients.
"""

import logging
import time
from typing import Callable, Optional

import redis.asyncio as redis

from digestauth.models import NonceRecord, NonceStatus
from digestauth.nonce_store import NonceStore, generate_token, parse_nonce_count
from digestauth.utils import redact_token

logger = logging.getLogger(__name__)

# KEYS: record, index
# ARGV: value, opaque, realm, created_at, ttl_ms
ISSUE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1], 'value', ARGV[1], 'opaque', ARGV[2], 'realm', ARGV[3],
           'created_at', ARGV[4], 'nonce_count', 0)
redis.call('ZADD', KEYS[2], ARGV[4], ARGV[1])
if tonumber(ARGV[5]) > 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[5])
end
return 1
"""

# KEYS: record, index
# ARGV: value, count, now_ms, max_age_ms ('' for no age check)
VALIDATE_AND_BUMP_SCRIPT = """
local created = redis.call('HGET', KEYS[1], 'created_at')
if not created then
    return 'not_found'
end
if ARGV[4] ~= '' and (tonumber(ARGV[3]) - tonumber(created)) > tonumber(ARGV[4]) then
    redis.call('DEL', KEYS[1])
    redis.call('ZREM', KEYS[2], ARGV[1])
    return 'stale'
end
local current = tonumber(redis.call('HGET', KEYS[1], 'nonce_count') or '0')
if current >= tonumber(ARGV[2]) then
    return 'replayed'
end
redis.call('HSET', KEYS[1], 'nonce_count', ARGV[2])
return 'ok'
"""

# KEYS: index
# ARGV: record key prefix
# Drops index entries whose record already expired through the backstop TTL.
SIZE_SCRIPT = """
for _, member in ipairs(redis.call('ZRANGE', KEYS[1], 0, -1)) do
    if redis.call('EXISTS', ARGV[1] .. member) == 0 then
        redis.call('ZREM', KEYS[1], member)
    end
end
return redis.call('ZCARD', KEYS[1])
"""

# KEYS: index
# ARGV: cutoff ('all' to remove everything), record key prefix
SWEEP_SCRIPT = """
local members
if ARGV[1] == 'all' then
    members = redis.call('ZRANGE', KEYS[1], 0, -1)
else
    members = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[1])
end
for _, member in ipairs(members) do
    redis.call('DEL', ARGV[2] .. member)
    redis.call('ZREM', KEYS[1], member)
end
return #members
"""


class RedisNonceStore(NonceStore):
    """Nonce store shared through Redis."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "digest_auth",
        ttl_ms: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize Redis nonce store.

        Args:
            url: Redis connection URL
            prefix: Key prefix for all nonce keys
            ttl_ms: Backstop expiry for records in milliseconds (0 or negative disables it).
                Records are normally removed by sweep_expired; the TTL only
                bounds memory if sweeps stop running.
            clock: Returns the current time in seconds (injectable for tests)
        """
        self.url = url
        self.prefix = prefix
        self.ttl_ms = ttl_ms
        self._clock = clock
        self.redis: Optional[redis.Redis] = None

    @property
    def _record_prefix(self) -> str:
        return f"{{{self.prefix}}}:nonce:"

    def _record_key(self, nonce: str) -> str:
        return f"{self._record_prefix}{nonce}"

    @property
    def _index_key(self) -> str:
        return f"{{{self.prefix}}}:nonces"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _client(self) -> redis.Redis:
        """Get Redis connection, creating it if needed."""
        if self.redis is None:
            self.redis = redis.from_url(self.url, decode_responses=True)
        return self.redis

    async def connect(self) -> None:
        """Establish connection to Redis."""
        try:
            await self._client().ping()
            logger.info(f"Connected to Redis nonce store: {self.url}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise ConnectionError(f"Failed to connect to Redis: {e}")

    async def issue(self, realm: str) -> NonceRecord:
        client = self._client()
        while True:
            record = NonceRecord(
                value=generate_token(),
                opaque=generate_token(),
                realm=realm,
                created_at=self._now_ms(),
            )
            created = await client.eval(
                ISSUE_SCRIPT,
                2,
                self._record_key(record.value),
                self._index_key,
                record.value,
                record.opaque,
                record.realm,
                record.created_at,
                self.ttl_ms,
            )
            if int(created) == 1:
                break

        logger.debug(f"Issued nonce {redact_token(record.value)} for realm '{realm}'")
        return record

    async def lookup(self, nonce: str) -> Optional[NonceRecord]:
        data = await self._client().hgetall(self._record_key(nonce))
        if not data:
            return None
        return NonceRecord.from_dict(data)

    async def validate_and_bump(
        self,
        nonce: str,
        nc: str,
        max_age_ms: Optional[int] = None,
    ) -> NonceStatus:
        count = parse_nonce_count(nc)

        result = await self._client().eval(
            VALIDATE_AND_BUMP_SCRIPT,
            2,
            self._record_key(nonce),
            self._index_key,
            nonce,
            count,
            self._now_ms(),
            "" if max_age_ms is None else max_age_ms,
        )
        if isinstance(result, bytes):
            result = result.decode("utf-8")
        return NonceStatus(result)

    async def sweep_expired(self, max_age_ms: int) -> int:
        cutoff = "all" if max_age_ms < 0 else self._now_ms() - max_age_ms
        removed = await self._client().eval(
            SWEEP_SCRIPT,
            1,
            self._index_key,
            cutoff,
            self._record_prefix,
        )
        removed = int(removed)
        if removed:
            logger.debug(f"Swept {removed} expired nonce(s) from Redis")
        return removed

    async def size(self) -> int:
        """Number of live records; index entries of TTL-expired records are dropped first."""
        return int(await self._client().eval(SIZE_SCRIPT, 1, self._index_key, self._record_prefix))

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Disconnected from Redis nonce store")
