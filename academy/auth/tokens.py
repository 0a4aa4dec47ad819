# academy/auth/tokens.py
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from jose import jwt, JWTError

from academy.core.config import config
from academy.core.errors import AuthenticationError


class TokenClaims(NamedTuple):
    user_id: str
    expiry: datetime


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> TokenClaims:
    """Decode and check signature/expiry, returning who the token belongs to"""
    if not token or token in ("undefined", "null"):
        raise AuthenticationError("Authentication required")
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or Expired Token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user_id")
    if "exp" not in payload:
        raise AuthenticationError("Invalid token: missing expiry")

    expiry = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    return TokenClaims(user_id=user_id, expiry=expiry)
