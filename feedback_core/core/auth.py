"""Bearer token authentication for administrative routes.

Tokens are issued by the user-facing backend and carry ``{id, username,
role}``; this module only verifies them with the shared ``JwtTokenService``
on ``app.state`` and enforces roles.

A missing token is 401, an invalid token or an insufficient role is 403.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request, status

from feedback_core.core.errors import ValidationAppError
from feedback_core.core.security import JwtTokenService

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "super_admin")


@dataclass(frozen=True)
class CurrentUser:
    id: int
    username: str | None
    role: str


def get_token_service(request: Request) -> JwtTokenService:
    return request.app.state.token_service


def _user_from_claims(claims: dict[str, Any]) -> CurrentUser | None:
    raw_id = claims.get("id", claims.get("userId"))
    if isinstance(raw_id, bool) or not isinstance(raw_id, int):
        return None
    # Unsubscribe tokens are signed with the same key but never authenticate
    if claims.get("type") == "unsubscribe":
        return None
    return CurrentUser(id=raw_id, username=claims.get("username"), role=str(claims.get("role", "user")))


async def get_current_user(
    tokens: Annotated[JwtTokenService, Depends(get_token_service)],
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """FastAPI dependency resolving the caller from ``Authorization: Bearer``.

    Raises:
        HTTPException: 401 without a bearer token, 403 when it does not verify.
    """
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        logger.warning("auth.missing_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = tokens.verify(token.strip())
    except ValidationAppError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc

    user = _user_from_claims(claims)
    if user is None:
        logger.warning("auth.invalid_claims", extra={"claim_keys": sorted(claims)})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is not a user token")
    return user


def require_roles(*roles: str) -> Callable[..., Awaitable[CurrentUser]]:
    """Build a dependency that admits only users holding one of ``roles``.

    Usage:
        @router.get("/audit", dependencies=[Depends(require_roles("super_admin"))])
    """

    async def dependency(user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
        if user.role not in roles:
            logger.warning(
                "auth.forbidden_role",
                extra={"user_id": user.id, "role": user.role, "required": list(roles)},
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return dependency
