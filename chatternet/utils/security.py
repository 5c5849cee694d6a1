from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from chatternet.core.config import get_settings
from chatternet.core.exceptions import UnauthenticatedError
from chatternet.utils.clock import utc_now


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """Mint a bearer token for ``user_id`` (dev tooling and tests; production tokens come from the identity provider)."""
    settings = get_settings()
    expire = utc_now() + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret.get_secret_value(), algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc
    if not payload.get("sub"):
        raise UnauthenticatedError("Token has no subject")
    return payload
