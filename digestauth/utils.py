import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def redact_token(token: Optional[str], visible: int = 6) -> str:
    """
    Shorten a secret-ish token (nonce, opaque, response) for log output.

    Only the first characters are kept so log lines can still be
    correlated without exposing a usable value.

    Args:
        token: The token to redact
        visible: Number of leading characters to keep

    Returns:
        Redacted representation such as "3f9a1c..."
    """
    if not token:
        return "<none>"
    if len(token) <= visible:
        return "*" * len(token)
    return f"{token[:visible]}..."


def sanitize_error_message(error: Any, context: str = None) -> str:
    """
    Sanitize error messages to prevent information disclosure.

    The detailed error is logged server-side; the returned message is
    generic and safe to show to clients.

    Args:
        error: The error object or error message string
        context: Optional context about where the error occurred

    Returns:
        Generic error message safe for client exposure
    """
    error_str = str(error)

    if context:
        logger.error(f"[{context}]: {error_str}")
    else:
        logger.error(error_str)

    # Don't expose URLs, file paths, credentials or internal error details
    if context:
        return f"Processing error occurred in {context}"
    return "An error occurred while processing the request"
