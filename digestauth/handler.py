"""
Digest authentication handler.

The handler is the single entry point used by the web layer: it takes the
method, request target and Authorization header of a request and decides
whether the request is authorized or must be answered with a challenge.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from digestauth.challenge import ChallengeIssuer
from digestauth.credentials import CredentialProvider
from digestauth.models import AuthFailure, Challenge, Principal
from digestauth.nonce_store import InMemoryNonceStore, NonceStore
from digestauth.utils import redact_token
from digestauth.verifier import DigestVerifier

logger = logging.getLogger(__name__)

DEFAULT_REALM = "default"
DEFAULT_NONCE_EXPIRE_TIMEOUT_MS = 3600 * 1000


@dataclass
class Authorized:
    """The request carries valid credentials."""
    principal: Principal


@dataclass
class Unauthorized:
    """The request must be answered with 401 and the given challenge."""
    challenge: Challenge
    failure: AuthFailure  # Internal only, never sent to the client

    @property
    def www_authenticate(self) -> str:
        return self.challenge.to_header()


AuthResult = Union[Authorized, Unauthorized]


class DigestAuthHandler:
    """
    HTTP Digest Authentication handler.

    Features:
    - Challenge issuance with random nonce and opaque tokens
    - MD5 response verification with qop="auth"
    - Replay protection through strictly increasing nonce counts
    - Nonce expiry, swept whenever a new challenge is issued

    All failure kinds produce the same Unauthorized outcome with a fresh
    challenge; the kind is only logged.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        store: Optional[NonceStore] = None,
        realm: Optional[str] = None,
        nonce_expire_timeout_ms: int = DEFAULT_NONCE_EXPIRE_TIMEOUT_MS,
        verify_uri: bool = True,
    ):
        """
        Initialize handler.

        Args:
            credential_provider: Source of HA1 secrets
            store: Nonce store (default: a new InMemoryNonceStore)
            realm: Realm to challenge for (default: the provider's realm, else "default")
            nonce_expire_timeout_ms: Nonce lifetime in milliseconds. A negative
                value expires every outstanding nonce when the next challenge is issued.
            verify_uri: Require the digest uri to match the request target
        """
        if not isinstance(nonce_expire_timeout_ms, int) or isinstance(nonce_expire_timeout_ms, bool):
            raise ValueError(f"nonce_expire_timeout_ms must be an integer, got {type(nonce_expire_timeout_ms)}")

        self.credential_provider = credential_provider
        self.store = store if store is not None else InMemoryNonceStore()
        self.realm = realm or credential_provider.realm or DEFAULT_REALM
        self.nonce_expire_timeout_ms = nonce_expire_timeout_ms

        self.issuer = ChallengeIssuer(self.store, self.realm, nonce_expire_timeout_ms)
        self.verifier = DigestVerifier(
            self.store,
            credential_provider,
            self.realm,
            nonce_expire_timeout_ms,
            verify_uri=verify_uri,
        )

    @classmethod
    def create(
        cls,
        credential_provider: CredentialProvider,
        nonce_expire_timeout_ms: int = DEFAULT_NONCE_EXPIRE_TIMEOUT_MS,
        **kwargs,
    ) -> "DigestAuthHandler":
        """Create a handler with its own in-memory nonce store."""
        return cls(credential_provider, nonce_expire_timeout_ms=nonce_expire_timeout_ms, **kwargs)

    async def intercept(self, method: str, uri: str, authorization: Optional[str]) -> AuthResult:
        """
        Authenticate one request.

        Args:
            method: HTTP request method
            uri: Request target (path and query)
            authorization: Raw Authorization header value, or None

        Returns:
            Authorized with the principal, or Unauthorized with a new challenge
        """
        result = await self.verifier.verify(method, uri, authorization)

        if result.success:
            logger.debug(f"Authenticated '{result.principal.username}' for {method} {uri}")
            return Authorized(result.principal)

        if authorization:
            logger.info(
                f"Digest auth failed ({result.failure.value}): {result.message} "
                f"[user={result.details.get('username', '<none>')}, "
                f"nonce={redact_token(result.details.get('nonce'))}]"
            )

        challenge = await self.issuer.issue_challenge()
        return Unauthorized(challenge=challenge, failure=result.failure)

    async def close(self) -> None:
        """Dispose the nonce store."""
        await self.store.close()
