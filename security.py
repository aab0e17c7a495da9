"""
Access gate: password hashing, JWT issuance/verification and role checks.

Tokens carry the user id (`sub`) and role, so verification never touches
the database.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

import config
from errors import AuthError, ForbiddenError
from logging_config import set_user_id

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)
bearer_scheme = HTTPBearer(auto_error=False)

TOKEN_REQUIRED = "No token provided. Use Authorization: Bearer <token>"


class CurrentUser(BaseModel):
    id: str
    role: str


# Helpers

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def token_for_user(user: Dict[str, Any]) -> str:
    return create_access_token({"sub": str(user["_id"]), "role": user.get("role", config.ROLE_VOLUNTEER)})


def decode_token(token: str) -> CurrentUser:
    """Verify a bearer token; expired and malformed tokens fail with different codes"""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Token has expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise AuthError("Invalid token", code="TOKEN_INVALID")
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise AuthError("Invalid token", code="TOKEN_INVALID")
    return CurrentUser(id=user_id, role=role)


# ===== Dependencies =====

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise AuthError(TOKEN_REQUIRED, code="TOKEN_MISSING")
    user = decode_token(credentials.credentials)
    set_user_id(user.id)
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[CurrentUser]:
    """Anonymous callers pass through; a header that is present must still be valid"""
    if credentials is None:
        return None
    user = decode_token(credentials.credentials)
    set_user_id(user.id)
    return user


def require_roles(*roles: str):
    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise ForbiddenError(f"Access denied. Required roles: {', '.join(roles)}")
        return user
    return checker
