"""
Nonce storage for Digest Authentication.

A nonce store keeps the server nonces handed out in challenges together with
the highest nonce count (nc) accepted for each of them. It supports:
- Issue: Create a new random nonce/opaque pair
- Lookup: Find a live nonce
- Validate and bump: Atomically accept a strictly increasing nc
- Sweep: Drop nonces older than a timeout

The store is the only shared mutable state of the digest auth handler, so
every implementation must make validate_and_bump atomic.
"""

import asyncio
import logging
import re
import secrets
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from digestauth.models import NonceRecord, NonceStatus
from digestauth.utils import redact_token

logger = logging.getLogger(__name__)

# 16 random bytes = 128 bits of entropy per token
NONCE_BYTES = 16

_NC_PATTERN = re.compile(r"[0-9a-fA-F]{1,8}")


def generate_token(nbytes: int = NONCE_BYTES) -> str:
    """Generate a hex token from the operating system CSPRNG."""
    return secrets.token_hex(nbytes)


def parse_nonce_count(nc: str) -> int:
    """
    Parse an nc value (hexadecimal, at most 8 digits).

    Raises:
        ValueError: If nc is not a valid nonce count
    """
    if not isinstance(nc, str) or not _NC_PATTERN.fullmatch(nc):
        raise ValueError(f"Invalid nonce count: {nc!r}")
    return int(nc, 16)


class NonceStore(ABC):
    """Abstract interface for nonce store backends."""

    @abstractmethod
    async def issue(self, realm: str) -> NonceRecord:
        """
        Create and register a new nonce.

        Args:
            realm: Realm the challenge is issued for

        Returns:
            The new record, with nonce_count 0
        """
        pass

    @abstractmethod
    async def lookup(self, nonce: str) -> Optional[NonceRecord]:
        """Return the record for a nonce, or None if it is not live."""
        pass

    @abstractmethod
    async def validate_and_bump(
        self,
        nonce: str,
        nc: str,
        max_age_ms: Optional[int] = None,
    ) -> NonceStatus:
        """
        Check a nonce count and store it if it is newer than the last one.

        The check and the update form one atomic step: two concurrent calls
        with the same nonce and nc can never both return OK.

        Args:
            nonce: Nonce value sent by the client
            nc: Nonce count sent by the client (hex string)
            max_age_ms: If given, nonces older than this are reported STALE

        Returns:
            NonceStatus.OK if the count was accepted

        Raises:
            ValueError: If nc is not a valid nonce count
        """
        pass

    @abstractmethod
    async def sweep_expired(self, max_age_ms: int) -> int:
        """
        Remove records older than max_age_ms.

        A negative max_age_ms removes every record present at call time.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    async def size(self) -> int:
        """Number of live records."""
        pass

    async def close(self) -> None:
        """Release resources held by the store."""
        pass


class InMemoryNonceStore(NonceStore):
    """
    Process-local nonce store.

    Records live in a dict guarded by an asyncio lock. Suitable for a
    single worker process; use RedisNonceStore to share nonces between
    several workers or instances.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize the store.

        Args:
            clock: Returns the current time in seconds (injectable for tests)
        """
        self._clock = clock
        self._records: Dict[str, NonceRecord] = {}
        self._lock = asyncio.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def issue(self, realm: str) -> NonceRecord:
        async with self._lock:
            value = generate_token()
            while value in self._records:
                value = generate_token()

            record = NonceRecord(
                value=value,
                opaque=generate_token(),
                realm=realm,
                created_at=self._now_ms(),
            )
            self._records[value] = record

        logger.debug(f"Issued nonce {redact_token(value)} for realm '{realm}'")
        return NonceRecord(**record.to_dict())

    async def lookup(self, nonce: str) -> Optional[NonceRecord]:
        async with self._lock:
            record = self._records.get(nonce)
            if record is None:
                return None
            # Copy so callers never mutate shared state outside the lock
            return NonceRecord(**record.to_dict())

    async def validate_and_bump(
        self,
        nonce: str,
        nc: str,
        max_age_ms: Optional[int] = None,
    ) -> NonceStatus:
        count = parse_nonce_count(nc)

        async with self._lock:
            record = self._records.get(nonce)
            if record is None:
                return NonceStatus.NOT_FOUND

            if max_age_ms is not None and record.age_ms(self._now_ms()) > max_age_ms:
                del self._records[nonce]
                return NonceStatus.STALE

            if record.nonce_count >= count:
                return NonceStatus.REPLAYED

            record.nonce_count = count
            return NonceStatus.OK

    async def sweep_expired(self, max_age_ms: int) -> int:
        async with self._lock:
            if max_age_ms < 0:
                removed = len(self._records)
                self._records.clear()
            else:
                now = self._now_ms()
                expired = [
                    value for value, record in self._records.items()
                    if record.age_ms(now) > max_age_ms
                ]
                for value in expired:
                    del self._records[value]
                removed = len(expired)

        if removed:
            logger.debug(f"Swept {removed} expired nonce(s)")
        return removed

    async def size(self) -> int:
        async with self._lock:
            return len(self._records)

    async def close(self) -> None:
        async with self._lock:
            self._records.clear()
