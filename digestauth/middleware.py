"""
ASGI integration for the digest auth handler.

- DigestAuthMiddleware: protects every route below the configured path prefixes
- require_digest_auth: FastAPI dependency protecting individual routes
"""

import logging
from typing import Iterable, List

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import PlainTextResponse

from digestauth.handler import Authorized, DigestAuthHandler
from digestauth.models import Principal

logger = logging.getLogger(__name__)

UNAUTHORIZED_BODY = "Unauthorized"


def request_target(request: StarletteRequest) -> str:
    """
    Rebuild the request target (path and query) as sent by the client.

    The raw path is used when the server provides it, because clients
    compute the digest over the undecoded URI.
    """
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def path_is_protected(path: str, prefixes: Iterable[str]) -> bool:
    """Check whether a path lies below one of the protected prefixes."""
    for prefix in prefixes:
        if prefix == "/":
            return True
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def unauthorized_response(www_authenticate: str) -> PlainTextResponse:
    return PlainTextResponse(
        UNAUTHORIZED_BODY,
        status_code=401,
        headers={"WWW-Authenticate": www_authenticate},
    )


class DigestAuthMiddleware(BaseHTTPMiddleware):
    """Middleware requiring Digest authentication below the protected path prefixes."""

    def __init__(self, app, handler: DigestAuthHandler, protected_paths: List[str]):
        super().__init__(app)
        self.handler = handler
        self.protected_paths = list(protected_paths)

    async def dispatch(self, request: StarletteRequest, call_next):
        if not path_is_protected(request.url.path, self.protected_paths):
            return await call_next(request)

        result = await self.handler.intercept(
            request.method,
            request_target(request),
            request.headers.get("authorization"),
        )

        if not isinstance(result, Authorized):
            return unauthorized_response(result.www_authenticate)

        request.state.user = result.principal
        return await call_next(request)


async def require_digest_auth(request: Request) -> Principal:
    """
    FastAPI dependency returning the authenticated principal.

    Uses the handler stored in app.state.digest_auth. Requests already
    authenticated by DigestAuthMiddleware are not checked twice, since a
    second check would consume the nonce count again.
    """
    principal = getattr(request.state, "user", None)
    if isinstance(principal, Principal):
        return principal

    handler: DigestAuthHandler = request.app.state.digest_auth
    result = await handler.intercept(
        request.method,
        request_target(request),
        request.headers.get("authorization"),
    )

    if not isinstance(result, Authorized):
        raise HTTPException(
            status_code=401,
            detail=UNAUTHORIZED_BODY,
            headers={"WWW-Authenticate": result.www_authenticate},
        )

    request.state.user = result.principal
    return result.principal
