"""Signed token issuance and verification (PyJWT, HMAC).

Only the unsubscribe link in reply emails needs a token today; the service
is generic over the claims it signs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from jwt.exceptions import InvalidTokenError

from feedback_core.core.config import AuthSettings, settings
from feedback_core.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


class JwtTokenService:
    """Issue and verify HMAC-signed JWTs."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        if not secret_key:
            raise ValueError("JWT secret key must not be empty")
        self._secret_key = secret_key
        self._algorithm = algorithm

    @classmethod
    def from_settings(cls, auth: AuthSettings | None = None) -> "JwtTokenService":
        auth = auth or settings.auth
        return cls(auth.jwt_secret, auth.jwt_algorithm)

    def issue(self, claims: dict[str, Any], *, expires_in: timedelta) -> str:
        """Sign ``claims`` with ``iat`` and ``exp`` added."""
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + expires_in}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        """Decode ``token`` and return its claims.

        Raises:
            ValidationAppError: If the token is malformed, tampered with or expired.
        """
        try:
            return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except InvalidTokenError as exc:
            logger.info("token.invalid", extra={"error_type": type(exc).__name__})
            raise ValidationAppError(
                code="invalid_token",
                message="Token is invalid or expired",
            ) from exc
