"""Bearer-token authentication for the protected API routes."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from app.schemas import Credential
from datastore.credential_store import CredentialStore
from errors import AuthError

logger = logging.getLogger(__name__)

MISSING_HEADER_MESSAGE = "Missing or invalid authentication header."
INVALID_TOKEN_MESSAGE = "Invalid token."


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from a ``Bearer <token>`` header value, if well formed."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def authenticate(authorization: Optional[str], credentials: CredentialStore) -> Credential:
    """Validate an ``Authorization`` header value against the stored credential.

    Raises :class:`AuthError` when the header is absent or malformed, or when
    the token does not match. The token itself is never included in errors.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        logger.warning("Authentication failed", extra={"reason": "missing_or_malformed_header"})
        raise AuthError(MISSING_HEADER_MESSAGE)

    credential = credentials.find_by_token(token)
    if credential is None:
        logger.warning("Authentication failed", extra={"reason": "unknown_token"})
        raise AuthError(INVALID_TOKEN_MESSAGE)
    return credential


def require_bearer_token(request: Request) -> Credential:
    """FastAPI dependency guarding every route of the API router."""
    logger.debug("Authenticating request for %s", request.url.path)
    return authenticate(
        request.headers.get("Authorization"),
        request.app.state.credential_store,
    )
