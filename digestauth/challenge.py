"""
Challenge issuance for Digest Authentication.
"""

import logging

from digestauth.models import Challenge
from digestauth.nonce_store import NonceStore
from digestauth.utils import redact_token

logger = logging.getLogger(__name__)


class ChallengeIssuer:
    """
    Issues WWW-Authenticate challenges backed by a nonce store.

    Expired nonces are swept before each new nonce is registered, so the
    new entry is never removed by the sweep that precedes it. With a
    negative timeout this keeps at most one live nonce: every challenge
    replaces the previous one.
    """

    def __init__(self, store: NonceStore, realm: str, nonce_expire_timeout_ms: int):
        self.store = store
        self.realm = realm
        self.nonce_expire_timeout_ms = nonce_expire_timeout_ms

    async def issue_challenge(self) -> Challenge:
        await self.store.sweep_expired(self.nonce_expire_timeout_ms)
        record = await self.store.issue(self.realm)
        logger.debug(f"Issuing challenge with nonce {redact_token(record.value)}")
        return Challenge.from_record(record)
