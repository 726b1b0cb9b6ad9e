from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from config.settings import settings

security = HTTPBearer()


def auth_middleware(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """
    Tokens are issued by the external auth service; we only verify them.
    Returns the staff member's id and roles.
    """
    token = credentials.credentials
    try:
        decoded = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = decoded.get("id")
    if not user_id:
        # token was structurally OK but payload missing
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    roles = decoded.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]

    return {
        "id": user_id,
        "name": decoded.get("username"),
        "roles": list(roles),
    }


def require_admin(current_user: dict = Depends(auth_middleware)):
    if "admin" not in current_user["roles"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return current_user
