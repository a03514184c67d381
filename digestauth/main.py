#!/usr/bin/env python3
"""
Digest Auth service.

Serves resources protected by HTTP Digest Authentication.

Usage:
    python -m digestauth.main --config digest_auth.json
    python -m digestauth.main --htdigest-file .htdigest --realm testrealm@host.com
    uvicorn digestauth.main:create_app --factory --port 8000

Environment variables:
    DIGEST_AUTH_REALM: Realm sent in challenges
    DIGEST_AUTH_HTDIGEST_FILE: Path to the htdigest credential file
    DIGEST_AUTH_NONCE_STORE: memory or redis
    DIGEST_AUTH_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from fastapi import Depends, FastAPI

from digestauth.config import DigestAuthConfig
from digestauth.credentials import CredentialProvider, HtdigestCredentialProvider
from digestauth.handler import DigestAuthHandler
from digestauth.middleware import DigestAuthMiddleware, require_digest_auth
from digestauth.models import Principal
from digestauth.nonce_store import InMemoryNonceStore, NonceStore
from digestauth.redis_nonce_store import RedisNonceStore
from digestauth.utils import sanitize_error_message

logger = logging.getLogger(__name__)


def create_nonce_store(config: DigestAuthConfig) -> NonceStore:
    """Build the nonce store selected in the configuration."""
    if config.nonce_store == "redis":
        # Backstop TTL only; regular expiry is done by the sweeps
        ttl_ms = 2 * config.nonce_expire_timeout_ms if config.nonce_expire_timeout_ms > 0 else 0
        return RedisNonceStore(url=config.redis_url, prefix=config.redis_prefix, ttl_ms=ttl_ms)
    return InMemoryNonceStore()


async def sweep_task(handler: DigestAuthHandler, interval_seconds: float):
    """
    Periodically remove expired nonces between challenges.

    Does nothing for a negative timeout: such a sweep would remove the
    nonce of the challenge that was just sent. Those nonces expire when
    the next challenge is issued.
    """
    if handler.nonce_expire_timeout_ms < 0:
        logger.info("Background nonce sweep disabled: nonces expire on the next challenge")
        return

    logger.info(f"Background nonce sweep every {interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await handler.store.sweep_expired(handler.nonce_expire_timeout_ms)
            logger.debug(f"Background sweep removed {removed} nonce(s)")
        except Exception as e:
            sanitize_error_message(e, "sweep_task")


def create_app(
    config: Optional[DigestAuthConfig] = None,
    credential_provider: Optional[CredentialProvider] = None,
    store: Optional[NonceStore] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    The handler and its nonce store are created here, so the app can serve
    requests even when lifespan events are not run (e.g. under ASGITransport).

    Args:
        config: Service configuration (default: DigestAuthConfig.load())
        credential_provider: Credential source (default: htdigest file from config)
        store: Nonce store (default: built from config)
    """
    if config is None:
        config = DigestAuthConfig.load()

    errors = config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

    if credential_provider is None:
        credential_provider = HtdigestCredentialProvider(config.htdigest_file, realm=config.realm)

    handler = DigestAuthHandler(
        credential_provider,
        store=store if store is not None else create_nonce_store(config),
        realm=config.realm,
        nonce_expire_timeout_ms=config.nonce_expire_timeout_ms,
        verify_uri=config.verify_uri,
    )

    app = FastAPI(title="Digest Auth Service")
    app.state.config = config
    app.state.digest_auth = handler
    app.state.sweep_task = None

    app.add_middleware(
        DigestAuthMiddleware,
        handler=handler,
        protected_paths=config.protected_paths,
    )

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Digest auth realm: '{handler.realm}'")
        logger.info(f"Protected paths: {', '.join(config.protected_paths)}")
        logger.info(f"Nonce store: {type(handler.store).__name__}")

        if isinstance(handler.store, RedisNonceStore):
            try:
                await handler.store.connect()
            except ConnectionError as e:
                # Requests will retry the connection lazily
                sanitize_error_message(e, "startup_event.RedisNonceStore")

        if config.sweep_interval_seconds > 0:
            app.state.sweep_task = asyncio.create_task(sweep_task(handler, config.sweep_interval_seconds))

    @app.on_event("shutdown")
    async def shutdown_event():
        task = app.state.sweep_task
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            app.state.sweep_task = None

        try:
            await handler.close()
        except Exception as e:
            sanitize_error_message(e, "shutdown_event.NonceStore")

    @app.get("/")
    async def default_endpoint():
        return {"message": "200 OK"}

    @app.get("/protected/{resource_path:path}")
    async def protected_resource(resource_path: str, principal: Principal = Depends(require_digest_auth)):
        return {
            "message": "Welcome to the protected resource!",
            "resource": resource_path,
            "user": principal.to_dict(),
        }

    @app.get("/whoami")
    async def whoami(principal: Principal = Depends(require_digest_auth)):
        return principal.to_dict()

    return app


def setup_logging(level: str = "INFO", format_str: Optional[str] = None) -> None:
    """Configure logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    log_format = format_str or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level, format=log_format, handlers=[logging.StreamHandler(sys.stdout)]
    )


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="HTTP Digest Authentication service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Using configuration file
    %(prog)s --config digest_auth.json

    # Using command line arguments
    %(prog)s --htdigest-file .htdigest --realm testrealm@host.com --port 8080
        """,
    )

    parser.add_argument("--config", "-c", help="Path to configuration file (JSON or YAML)")
    parser.add_argument("--realm", help="Realm sent in challenges")
    parser.add_argument("--htdigest-file", help="Path to the htdigest credential file")
    parser.add_argument(
        "--nonce-expire-timeout-ms",
        type=int,
        help="Nonce lifetime in milliseconds (negative: expire on next challenge)",
    )
    parser.add_argument("--nonce-store", choices=["memory", "redis"], help="Nonce store backend")
    parser.add_argument("--redis-url", help="Redis URL for the redis nonce store")
    parser.add_argument("--host", help="Listen host")
    parser.add_argument("--port", type=int, help="Listen port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> DigestAuthConfig:
    """Load configuration and apply command line overrides."""
    config = DigestAuthConfig.load(args.config)

    overrides = {
        "realm": args.realm,
        "htdigest_file": args.htdigest_file,
        "nonce_expire_timeout_ms": args.nonce_expire_timeout_ms,
        "nonce_store": args.nonce_store,
        "redis_url": args.redis_url,
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level,
    }
    for field_name, value in overrides.items():
        if value is not None:
            setattr(config, field_name, value)

    return config


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (FileNotFoundError, TypeError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(level=config.log_level, format_str=config.log_format)

    errors = config.validate()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    try:
        app = create_app(config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to start: {e}")
        return 1

    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
