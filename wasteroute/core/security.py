# wasteroute/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from wasteroute.core.config import settings
from wasteroute.core.errors import AuthenticationError, AuthorizationError
from wasteroute.core.roles import Role, as_role
from wasteroute.deps import get_repo

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password or "")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password or "", hashed or "")
    except ValueError:
        # empty or unrecognized hash
        return False


def create_token(user_id: str, role: str, minutes: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes or settings.access_ttl_min)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")
    if not data.get("sub"):
        raise AuthenticationError("Invalid token")
    return data


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), repo=Depends(get_repo)):
    """Resolve the bearer token to a stored user; the stored role is authoritative."""
    if not token:
        raise AuthenticationError("Not authenticated")
    data = decode_token(token)
    user = await repo.find_user(data["sub"])
    if not user:
        raise AuthenticationError("User not found")
    return user


def require_roles(*roles: Role):
    async def checker(user=Depends(get_current_user)):
        if as_role(user.get("role")) not in roles:
            raise AuthorizationError("Not enough permissions")
        return user
    return checker
