"""
Shared fixtures for the unit tests.
"""
import pytest

from digestauth.credentials import InMemoryCredentialProvider
from digestauth.digest import compute_digest
from digestauth.nonce_store import InMemoryNonceStore

REALM = "testrealm@host.com"
MUFASA_HA1 = "939e7578ed9e3c518a452acee763bce9"
CNONCE = "0a4f113b"


def build_authorization(
    nonce,
    uri="/dir/index.html",
    method="GET",
    nc="00000001",
    username="Mufasa",
    realm=REALM,
    ha1=MUFASA_HA1,
    cnonce=CNONCE,
    qop="auth",
    opaque=None,
    response=None,
    **extra,
):
    """Build a Digest Authorization header value the way a browser would."""
    if response is None:
        response = compute_digest(ha1, method, uri, qop, nonce, nc, cnonce)

    params = [
        f'username="{username}"',
        f'realm="{realm}"',
        f'nonce="{nonce}"',
        f'uri="{uri}"',
    ]
    if qop:
        params.append(f"qop={qop}")
    params += [f"nc={nc}", f'cnonce="{cnonce}"', f'response="{response}"']
    if opaque is not None:
        params.append(f'opaque="{opaque}"')
    params += [f'{key}="{value}"' for key, value in extra.items()]
    return "Digest " + ", ".join(params)


@pytest.fixture
def make_authorization():
    return build_authorization


@pytest.fixture
def credential_provider():
    return InMemoryCredentialProvider(REALM, {"Mufasa": MUFASA_HA1})


@pytest.fixture
def nonce_store():
    return InMemoryNonceStore()
