"""
Tests for RedisNonceStore with a mocked Redis client.
"""

import pytest
from unittest.mock import MagicMock, AsyncMock, patch

from digestauth.models import NonceStatus
from digestauth.redis_nonce_store import (
    RedisNonceStore,
    ISSUE_SCRIPT,
    VALIDATE_AND_BUMP_SCRIPT,
    SWEEP_SCRIPT,
    SIZE_SCRIPT,
)


@pytest.fixture
def mock_redis():
    client = MagicMock()
    client.ping = AsyncMock()
    client.eval = AsyncMock()
    client.hgetall = AsyncMock(return_value={})
    client.zcard = AsyncMock(return_value=0)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def store(mock_redis):
    store = RedisNonceStore(prefix="test", ttl_ms=7200000, clock=lambda: 1700000000.0)
    store.redis = mock_redis
    return store


class TestRedisNonceStore:
    """Test suite for RedisNonceStore."""

    @pytest.mark.asyncio
    async def test_client_created_from_url(self, mock_redis):
        """Test that the client is created lazily from the configured URL."""
        with patch("redis.asyncio.from_url", return_value=mock_redis) as from_url:
            store = RedisNonceStore(url="redis://example:6379/1")
            await store.connect()

            from_url.assert_called_once_with("redis://example:6379/1", decode_responses=True)
            mock_redis.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connection_error(self, store, mock_redis):
        """Test that connect reports an unreachable server as ConnectionError."""
        mock_redis.ping.side_effect = OSError("connection refused")

        with pytest.raises(ConnectionError):
            await store.connect()

    @pytest.mark.asyncio
    async def test_issue_runs_script(self, store, mock_redis):
        """Test that issue registers the record atomically."""
        mock_redis.eval.return_value = 1

        record = await store.issue("testrealm@host.com")

        assert record.realm == "testrealm@host.com"
        assert record.created_at == 1700000000000
        args = mock_redis.eval.call_args.args
        assert args[0] == ISSUE_SCRIPT
        assert args[1] == 2
        assert args[2] == f"{{test}}:nonce:{record.value}"
        assert args[3] == "{test}:nonces"
        assert args[4:] == (record.value, record.opaque, "testrealm@host.com", 1700000000000, 7200000)

    @pytest.mark.asyncio
    async def test_issue_retries_on_collision(self, store, mock_redis):
        """Test that issue generates a new nonce when the key already exists."""
        mock_redis.eval.side_effect = [0, 1]

        record = await store.issue("realm")

        assert mock_redis.eval.await_count == 2
        assert mock_redis.eval.call_args.args[2] == f"{{test}}:nonce:{record.value}"

    @pytest.mark.asyncio
    async def test_lookup_found(self, store, mock_redis):
        """Test that lookup converts the hash into a NonceRecord."""
        mock_redis.hgetall.return_value = {
            "value": "abc",
            "opaque": "def",
            "realm": "realm",
            "created_at": "1700000000000",
            "nonce_count": "3",
        }

        record = await store.lookup("abc")

        mock_redis.hgetall.assert_awaited_once_with("{test}:nonce:abc")
        assert record.nonce_count == 3
        assert record.created_at == 1700000000000
        assert record.opaque == "def"

    @pytest.mark.asyncio
    async def test_lookup_missing(self, store, mock_redis):
        """Test that lookup of an unknown nonce returns None."""
        assert await store.lookup("missing") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply,expected",
        [
            ("ok", NonceStatus.OK),
            ("replayed", NonceStatus.REPLAYED),
            ("stale", NonceStatus.STALE),
            ("not_found", NonceStatus.NOT_FOUND),
            (b"ok", NonceStatus.OK),
        ],
    )
    async def test_validate_and_bump_maps_reply(self, store, mock_redis, reply, expected):
        """Test that script replies map to NonceStatus values."""
        mock_redis.eval.return_value = reply

        assert await store.validate_and_bump("abc", "0000000a", max_age_ms=5000) == expected

        args = mock_redis.eval.call_args.args
        assert args[0] == VALIDATE_AND_BUMP_SCRIPT
        assert args[2:] == ("{test}:nonce:abc", "{test}:nonces", "abc", 10, 1700000000000, 5000)

    @pytest.mark.asyncio
    async def test_validate_and_bump_without_max_age(self, store, mock_redis):
        """Test that no age limit is passed as an empty string."""
        mock_redis.eval.return_value = "ok"

        await store.validate_and_bump("abc", "00000001")

        assert mock_redis.eval.call_args.args[-1] == ""

    @pytest.mark.asyncio
    async def test_validate_and_bump_invalid_nc(self, store, mock_redis):
        """Test that an invalid nc is rejected before Redis is called."""
        with pytest.raises(ValueError):
            await store.validate_and_bump("abc", "zz")
        mock_redis.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sweep_with_cutoff(self, store, mock_redis):
        """Test that sweep removes records created before now - max_age."""
        mock_redis.eval.return_value = 4

        assert await store.sweep_expired(1000) == 4

        args = mock_redis.eval.call_args.args
        assert args[0] == SWEEP_SCRIPT
        assert args[1:] == (1, "{test}:nonces", 1700000000000 - 1000, "{test}:nonce:")

    @pytest.mark.asyncio
    async def test_sweep_negative_removes_all(self, store, mock_redis):
        """Test that a negative timeout sweeps every record."""
        mock_redis.eval.return_value = 2

        assert await store.sweep_expired(-100) == 2
        assert mock_redis.eval.call_args.args[3] == "all"

    @pytest.mark.asyncio
    async def test_size_counts_live_records(self, store, mock_redis):
        """Test that size prunes index entries of expired records before counting."""
        mock_redis.eval.return_value = 7

        assert await store.size() == 7
        assert mock_redis.eval.call_args.args == (SIZE_SCRIPT, 1, "{test}:nonces", "{test}:nonce:")
        mock_redis.zcard.assert_not_awaited()

    def test_keys_share_hash_tag(self, store):
        """Test that record and index keys map to the same cluster slot."""
        assert store._record_key("abc").startswith("{test}:")
        assert store._index_key.startswith("{test}:")

    @pytest.mark.asyncio
    async def test_close(self, store, mock_redis):
        """Test that close releases the connection."""
        await store.close()

        mock_redis.aclose.assert_awaited_once()
        assert store.redis is None

    @pytest.mark.asyncio
    async def test_close_without_connection(self):
        """Test that closing an unused store is a no-op."""
        store = RedisNonceStore()
        await store.close()
        assert store.redis is None
