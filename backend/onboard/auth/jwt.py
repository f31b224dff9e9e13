"""JWT token creation and decoding.

Tokens are issued by the hosting platform's session endpoint.

Token claims:
  - sub:   user ID
  - cid:   community ID the session is scoped to
  - adm:   true if the user administers that community
  - type:  "access"
  - exp:   expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from onboard.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    community_id: str,
    is_admin: bool = False,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "cid": community_id,
        "adm": is_admin,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
