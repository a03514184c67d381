# Digest Auth - HTTP Digest Authentication (RFC 2617) for ASGI services
#
# This package provides challenge issuance, response verification and
# replay-protected nonce storage, plus FastAPI/Starlette integration.

from digestauth.__version__ import __version__
from digestauth.models import (
    NonceRecord,
    Challenge,
    CredentialClaim,
    Principal,
    NonceStatus,
    AuthFailure,
)
from digestauth.digest import compute_digest, compute_ha1, compute_ha2
from digestauth.nonce_store import NonceStore, InMemoryNonceStore
from digestauth.credentials import CredentialProvider, InMemoryCredentialProvider, HtdigestCredentialProvider
from digestauth.handler import DigestAuthHandler, Authorized, Unauthorized

__all__ = [
    "__version__",
    "NonceRecord",
    "Challenge",
    "CredentialClaim",
    "Principal",
    "NonceStatus",
    "AuthFailure",
    "compute_digest",
    "compute_ha1",
    "compute_ha2",
    "NonceStore",
    "InMemoryNonceStore",
    "CredentialProvider",
    "InMemoryCredentialProvider",
    "HtdigestCredentialProvider",
    "DigestAuthHandler",
    "Authorized",
    "Unauthorized",
]
