import jwt
import datetime
from typing import Any, Dict, List, Optional, Union

from config.settings import settings  # must define SECRET_KEY and ALGORITHM


def create_access_token(
    payload: Dict[str, Any],
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Generate a JWT access token with the given payload and expiration.
    """
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=minutes)
    to_encode = payload.copy()
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_staff_token(
    staff_id: Union[int, str],
    roles: Optional[List[str]] = None,
    username: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Token for a scanner operator or administrator."""
    token_payload: Dict[str, Any] = {
        "id": staff_id,
        "username": username or f"staff-{staff_id}",
        "roles": roles or ["staff"],   # default to ["staff"] if no roles
    }
    return create_access_token(token_payload, expires_minutes)
