"""
Verification of Digest Authorization headers.
"""

import hmac
import logging
import re
from typing import Dict, Optional, Tuple
from urllib.parse import urlsplit

from digestauth.credentials import CredentialProvider
from digestauth.digest import compute_digest
from digestauth.models import AuthFailure, CredentialClaim, NonceStatus, Principal, VerificationResult
from digestauth.nonce_store import NonceStore, parse_nonce_count

logger = logging.getLogger(__name__)

# RFC 7230 token characters
_TOKEN = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

REQUIRED_PARAMS = ("username", "realm", "nonce", "uri", "nc", "cnonce", "response")

# Cap header size to keep parsing cheap on hostile input
MAX_HEADER_LENGTH = 8192


def split_scheme(header: str) -> Tuple[str, str]:
    """
    Split an Authorization header into (scheme, parameters).

    >>> split_scheme('Digest username="Mufasa"')
    ('digest', 'username="Mufasa"')
    """
    header = header.strip()
    scheme, _, params = header.partition(" ")
    return scheme.lower(), params.strip()


def _skip_whitespace(data: str, pos: int) -> int:
    while pos < len(data) and data[pos] in " \t":
        pos += 1
    return pos


def _read_quoted_string(data: str, pos: int) -> Tuple[str, int]:
    """Read a quoted-string starting at the opening quote; returns (value, next position)."""
    chars = []
    pos += 1
    while True:
        if pos >= len(data):
            raise ValueError("Unterminated quoted string")
        char = data[pos]
        if char == "\\":
            pos += 1
            if pos >= len(data):
                raise ValueError("Unterminated escape in quoted string")
            chars.append(data[pos])
        elif char == '"':
            return "".join(chars), pos + 1
        else:
            chars.append(char)
        pos += 1


def parse_auth_params(data: str) -> Dict[str, str]:
    """
    Parse a comma separated auth-param list (RFC 7235 section 2.1).

    Values may be tokens or quoted strings with backslash escapes. Keys
    are lower-cased. Empty list elements are ignored.

    Raises:
        ValueError: If the list is malformed or a parameter is repeated
    """
    params: Dict[str, str] = {}
    pos = 0
    length = len(data)

    while True:
        while pos < length and data[pos] in " \t,":
            pos += 1
        if pos >= length:
            return params

        match = _TOKEN.match(data, pos)
        if not match:
            raise ValueError(f"Expected parameter name at position {pos}")
        key = match.group().lower()
        pos = _skip_whitespace(data, match.end())

        if pos >= length or data[pos] != "=":
            raise ValueError(f"Expected '=' after parameter '{key}'")
        pos = _skip_whitespace(data, pos + 1)

        if pos < length and data[pos] == '"':
            value, pos = _read_quoted_string(data, pos)
        else:
            match = _TOKEN.match(data, pos)
            if not match:
                raise ValueError(f"Expected value for parameter '{key}'")
            value = match.group()
            pos = match.end()

        if key in params:
            raise ValueError(f"Duplicate parameter '{key}'")
        params[key] = value

        pos = _skip_whitespace(data, pos)
        if pos < length and data[pos] != ",":
            raise ValueError(f"Expected ',' after parameter '{key}'")


def parse_authorization_header(header: str) -> CredentialClaim:
    """
    Parse a Digest Authorization header into a CredentialClaim.

    Raises:
        ValueError: If the header is not a complete, well-formed Digest claim
    """
    if len(header) > MAX_HEADER_LENGTH:
        raise ValueError("Authorization header too long")

    scheme, data = split_scheme(header)
    if scheme != "digest":
        raise ValueError("Digest authentication required")

    params = parse_auth_params(data)

    for param in REQUIRED_PARAMS:
        if not params.get(param):
            raise ValueError(f"Missing required Digest parameter: {param}")

    qop = params.get("qop")
    if qop is not None and qop != "auth":
        raise ValueError(f"Unsupported qop: {qop}")

    algorithm = params.get("algorithm")
    if algorithm is not None and algorithm.upper() != "MD5":
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    # Raises ValueError for anything but 1-8 hex digits
    parse_nonce_count(params["nc"])

    return CredentialClaim(
        username=params["username"],
        realm=params["realm"],
        nonce=params["nonce"],
        uri=params["uri"],
        nc=params["nc"],
        cnonce=params["cnonce"],
        response=params["response"],
        qop=qop,
        opaque=params.get("opaque"),
        algorithm=algorithm,
    )


def uri_matches(claim_uri: str, request_uri: str) -> bool:
    """
    Check the digest-uri against the request target (RFC 2617 section 3.2.2.5).

    Absolute URIs sent by some clients are reduced to path and query.
    """
    if claim_uri == request_uri:
        return True
    if "://" in claim_uri:
        parts = urlsplit(claim_uri)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return path == request_uri
    return False


class DigestVerifier:
    """
    Verifies Digest credentials against a nonce store and a credential provider.

    Steps, stopping at the first failure:
    1. Header present and using the Digest scheme
    2. All required parameters present and well-formed
    3. User known to the credential provider
    4. Nonce live, opaque matching
    5. Nonce count strictly greater than the last accepted one
    6. Response matching the expected digest
    """

    def __init__(
        self,
        store: NonceStore,
        credential_provider: CredentialProvider,
        realm: str,
        nonce_expire_timeout_ms: int,
        verify_uri: bool = True,
    ):
        self.store = store
        self.credential_provider = credential_provider
        self.realm = realm
        self.nonce_expire_timeout_ms = nonce_expire_timeout_ms
        self.verify_uri = verify_uri

    @property
    def _max_age_ms(self) -> Optional[int]:
        # A negative timeout means "expire on next challenge", not "already expired"
        if self.nonce_expire_timeout_ms < 0:
            return None
        return self.nonce_expire_timeout_ms

    async def verify(self, method: str, uri: str, authorization: Optional[str]) -> VerificationResult:
        """
        Verify the Authorization header of one request.

        Args:
            method: HTTP request method
            uri: Request target (path and query)
            authorization: Raw Authorization header value, or None

        Returns:
            VerificationResult with a principal on success
        """
        if not authorization:
            return VerificationResult.rejected(AuthFailure.MALFORMED_HEADER, "Missing Authorization header")

        try:
            claim = parse_authorization_header(authorization)
        except ValueError as e:
            return VerificationResult.rejected(AuthFailure.MALFORMED_HEADER, str(e))

        if claim.realm != self.realm:
            return VerificationResult.rejected(
                AuthFailure.MALFORMED_HEADER, "Invalid digest auth realm", username=claim.username
            )

        if self.verify_uri and not uri_matches(claim.uri, uri):
            return VerificationResult.rejected(
                AuthFailure.MALFORMED_HEADER, "Digest uri does not match request", username=claim.username
            )

        # No store lock is held while the provider runs
        ha1 = await self.credential_provider.lookup(claim.username)
        if ha1 is None:
            return VerificationResult.rejected(
                AuthFailure.UNKNOWN_USER, "Unknown user", username=claim.username
            )

        record = await self.store.lookup(claim.nonce)
        if record is None:
            return VerificationResult.rejected(
                AuthFailure.STALE_NONCE, "Unknown or expired nonce", username=claim.username, nonce=claim.nonce
            )

        if claim.opaque is not None and not hmac.compare_digest(
            claim.opaque.encode("utf-8"), record.opaque.encode("utf-8")
        ):
            return VerificationResult.rejected(
                AuthFailure.MALFORMED_HEADER, "Opaque does not match nonce", username=claim.username, nonce=claim.nonce
            )

        status = await self.store.validate_and_bump(claim.nonce, claim.nc, self._max_age_ms)
        if status == NonceStatus.REPLAYED:
            return VerificationResult.rejected(
                AuthFailure.REPLAYED_NONCE, "Nonce count already used", username=claim.username, nonce=claim.nonce
            )
        if status != NonceStatus.OK:
            return VerificationResult.rejected(
                AuthFailure.STALE_NONCE, "Unknown or expired nonce", username=claim.username, nonce=claim.nonce
            )

        expected = compute_digest(
            ha1,
            method,
            claim.uri,
            claim.qop,
            claim.nonce,
            claim.nc,
            claim.cnonce,
        )

        # Compare responses (constant-time)
        if not hmac.compare_digest(claim.response.lower().encode("utf-8"), expected.encode("utf-8")):
            return VerificationResult.rejected(
                AuthFailure.DIGEST_MISMATCH, "Invalid digest auth response", username=claim.username, nonce=claim.nonce
            )

        return VerificationResult.authorized(Principal(username=claim.username, realm=self.realm))
