from dataclasses import dataclass, field
from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core import security
from app.shared.constants import Role

reusable_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Caller identity taken from a verified bearer token."""

    id: str
    roles: frozenset[Role] = field(default_factory=frozenset)


def _parse_roles(raw: object) -> frozenset[Role]:
    if not isinstance(raw, list):
        return frozenset()
    roles = set()
    for value in raw:
        try:
            roles.add(Role(str(value).upper()))
        except ValueError:
            continue
    return frozenset(roles)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(reusable_bearer),
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = security.decode_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        ) from None

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Could not validate credentials",
        )
    return Principal(id=str(subject), roles=_parse_roles(payload.get("roles")))


class RoleChecker:
    def __init__(self, allowed_roles: List[Role], allow_admin: bool = True) -> None:
        self.allowed_roles = allowed_roles
        self.allow_admin = allow_admin

    def __call__(self, principal: Principal = Depends(get_current_principal)) -> Principal:
        if self.allow_admin and Role.ADMIN in principal.roles:
            return principal

        if principal.roles.intersection(self.allowed_roles):
            return principal

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
