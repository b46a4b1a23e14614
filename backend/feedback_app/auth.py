"""Authentication helpers and FastAPI security dependency.

Admin accounts live outside this service; it only verifies bearer JWTs
signed with the shared secret and checks the `role` claim. Public
feedback endpoints are authorized by their access token instead.
"""

from datetime import datetime, timedelta, timezone
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from .config import settings

ADMIN_ROLES = {"ADMIN", "SUPER_ADMIN"}

bearer_scheme = HTTPBearer()


def issue_token(subject: str, role: str, expire_hours: int = 24) -> str:
    """Sign a JWT for `subject` with the given `role` claim."""
    expire = datetime.now(timezone.utc) + timedelta(hours=expire_hours)
    payload = {"sub": subject, "role": role, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str):
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def require_admin(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> dict:
    """FastAPI dependency that returns the token payload of an admin caller.

    Raises 401 for a missing or invalid token and 403 when the token is
    valid but does not carry an admin role.
    """
    payload = decode_token(credentials.credentials)
    if not payload.get('sub'):
        raise HTTPException(status_code=401, detail='invalid token payload')
    if payload.get('role') not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail='admin role required')
    return payload
