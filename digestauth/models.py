"""
Data models for Digest Authentication.

This module defines the core data structures shared by the digest auth components:
- NonceRecord: A server nonce and its replay-protection state
- Challenge: The content of a WWW-Authenticate header
- CredentialClaim: The parsed content of an Authorization header
- Principal: The authenticated identity
- VerificationResult: Outcome of verifying one request
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from enum import Enum


class NonceStatus(Enum):
    """Result of checking a nonce count against the nonce store."""
    OK = "ok"                # Counter accepted and stored
    STALE = "stale"          # Nonce exists but is older than the expiry timeout
    REPLAYED = "replayed"    # Same or lower nonce count already seen
    NOT_FOUND = "not_found"  # Never issued, swept, or expired


class AuthFailure(Enum):
    """
    Internal reasons an authentication attempt failed.

    These are logged server-side only. Every kind produces the same
    401 response so clients cannot tell them apart.
    """
    MALFORMED_HEADER = "malformed_header"
    UNKNOWN_USER = "unknown_user"
    REPLAYED_NONCE = "replayed_nonce"
    STALE_NONCE = "stale_nonce"
    DIGEST_MISMATCH = "digest_mismatch"


def _quote(value: str) -> str:
    """Render a quoted-string, escaping backslashes and double quotes."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass
class NonceRecord:
    """A server nonce tracked by a nonce store."""

    value: str                     # The nonce sent to the client
    opaque: str                    # Opaque token issued alongside the nonce
    realm: str                     # Realm the nonce was issued for
    created_at: int                # Creation time, epoch milliseconds
    nonce_count: int = 0           # Highest nc accepted so far

    def age_ms(self, now_ms: int) -> int:
        """Milliseconds elapsed since the record was created."""
        return now_ms - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "opaque": self.opaque,
            "realm": self.realm,
            "created_at": self.created_at,
            "nonce_count": self.nonce_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NonceRecord":
        return cls(
            value=data["value"],
            opaque=data["opaque"],
            realm=data["realm"],
            created_at=int(data["created_at"]),
            nonce_count=int(data.get("nonce_count", 0)),
        )


@dataclass
class Challenge:
    """A Digest challenge, sent to the client in a WWW-Authenticate header."""

    realm: str
    nonce: str
    opaque: str
    qop: str = "auth"

    def to_header(self) -> str:
        """Render the WWW-Authenticate header value."""
        return (
            f"Digest realm={_quote(self.realm)}, "
            f"qop={_quote(self.qop)}, "
            f"nonce={_quote(self.nonce)}, "
            f"opaque={_quote(self.opaque)}"
        )

    @classmethod
    def from_record(cls, record: NonceRecord) -> "Challenge":
        return cls(realm=record.realm, nonce=record.value, opaque=record.opaque)


@dataclass
class CredentialClaim:
    """Credentials presented by the client in an Authorization header."""

    username: str
    realm: str
    nonce: str
    uri: str
    nc: str
    cnonce: str
    response: str
    qop: Optional[str] = None
    opaque: Optional[str] = None
    algorithm: Optional[str] = None


@dataclass
class Principal:
    """An authenticated identity. Lives for the duration of one request."""

    username: str
    realm: str

    def to_dict(self) -> Dict[str, Any]:
        return {"username": self.username, "realm": self.realm}


@dataclass
class VerificationResult:
    """Outcome of verifying the credentials of one request."""

    principal: Optional[Principal] = None
    failure: Optional[AuthFailure] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.principal is not None and self.failure is None

    @classmethod
    def authorized(cls, principal: Principal) -> "VerificationResult":
        return cls(principal=principal, message="Valid digest authentication")

    @classmethod
    def rejected(cls, failure: AuthFailure, message: str, **details: Any) -> "VerificationResult":
        return cls(failure=failure, message=message, details=details)
