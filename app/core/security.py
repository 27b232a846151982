from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Union

from jose import jwt

from app.core.config import settings

ALGORITHM = "HS256"
# Tokens are minted by the identity service; both sides must share SECRET_KEY.
SECRET_KEY = settings.SECRET_KEY or "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7"


def create_access_token(
    subject: Union[str, Any],
    roles: Iterable[str] = (),
    expires_delta: Union[timedelta, None] = None,
) -> str:
    """Mint a token in the identity service's format. Used by scripts and tests."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)

    to_encode = {"exp": expire, "sub": str(subject), "roles": list(roles)}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry; raises jose.JWTError on any failure."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
