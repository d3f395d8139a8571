"""Authentication collaborator: bearer JWT → ``Principal``.

Tokens are issued elsewhere; this module only verifies them with
``AUTH_JWT_SECRET`` and reads the caller's id and roles.
"""

import os
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from commerce.errors import AccessDenied, NotAuthenticated

ADMIN_ROLE = "admin"

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: str
    roles: frozenset = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def can_access(self, owner_id) -> bool:
        return self.is_admin or str(owner_id) == self.user_id


def jwt_secret() -> str:
    return os.environ.get("AUTH_JWT_SECRET", "change-me")


def jwt_algorithm() -> str:
    return os.environ.get("AUTH_JWT_ALGORITHM", "HS256")


def decode_principal(token: str) -> Principal:
    try:
        claims = jwt.decode(token, jwt_secret(), algorithms=[jwt_algorithm()])
    except JWTError as exc:
        raise NotAuthenticated(f"Invalid token: {exc}") from exc

    user_id = claims.get("sub") or claims.get("userId")
    if not user_id:
        raise NotAuthenticated("Token carries no user id")
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return Principal(user_id=str(user_id), roles=frozenset(roles))


async def current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
) -> Principal:
    if credentials is None:
        raise NotAuthenticated("Authentication required")
    return decode_principal(credentials.credentials)


async def admin_principal(principal: Annotated[Principal, Depends(current_principal)]) -> Principal:
    if not principal.is_admin:
        raise AccessDenied("Administrator role required")
    return principal


def ensure_can_access(principal: Principal, owner_id) -> None:
    if not principal.can_access(owner_id):
        raise AccessDenied("You do not have access to this resource")
