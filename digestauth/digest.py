"""
MD5 digest computation for HTTP Digest Authentication (RFC 2617 section 3.2.2).
"""

import hashlib
from typing import Optional


def md5_hex(data: str) -> str:
    """Return the lowercase hex MD5 of a UTF-8 string."""
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def compute_ha1(username: str, realm: str, password: str) -> str:
    """HA1 = MD5(username:realm:password)"""
    return md5_hex(f"{username}:{realm}:{password}")


def compute_ha2(method: str, uri: str) -> str:
    """HA2 = MD5(method:uri) for qop="auth" and for requests without qop."""
    return md5_hex(f"{method}:{uri}")


def compute_digest(
    ha1: str,
    method: str,
    uri: str,
    qop: Optional[str],
    nonce: str,
    nc: str,
    cnonce: str,
) -> str:
    """
    Compute the expected request-digest.

    Args:
        ha1: Precomputed MD5(username:realm:password), as stored by the credential provider
        method: HTTP request method
        uri: The digest-uri sent by the client
        qop: Quality of protection ("auth"), or None for RFC 2069 style clients
        nonce: Server nonce
        nc: Nonce count, exactly as sent by the client (8 hex digits)
        cnonce: Client nonce

    Returns:
        Lowercase hex digest
    """
    ha2 = compute_ha2(method, uri)

    if qop:
        # Response = MD5(HA1:nonce:nonceCount:cnonce:qop:HA2)
        return md5_hex(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")

    # No qop
    return md5_hex(f"{ha1}:{nonce}:{ha2}")
