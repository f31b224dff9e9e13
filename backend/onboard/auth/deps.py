"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user  → decode JWT, return the caller's AuthUser
  require_admin     → restrict to community admins

Routes hand `user.user_id` / `user.community_id` to services explicitly;
nothing below the router reads request state.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from onboard.auth.jwt import decode_token
from onboard.middleware.exceptions import PermissionDeniedError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/session")


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    community_id: str
    is_admin: bool = False


async def get_current_user(token: str = Depends(oauth2_scheme)) -> AuthUser:
    """Decode the JWT and return the caller's identity."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    community_id: str | None = payload.get("cid")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not community_id:
        raise PermissionDeniedError("No community context in token")
    return AuthUser(
        user_id=user_id,
        community_id=community_id,
        is_admin=bool(payload.get("adm", False)),
    )


async def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Restrict endpoint to community admins."""
    if not user.is_admin:
        raise PermissionDeniedError("Community admin access required")
    return user
