"""Staff credentials and session tokens.

A token only names the identity (``uid``) and its role at sign-in time; the
profile itself is re-read on every request so that a removed profile ends
the session.
"""
from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import os

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(uid: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Signed session token for an authenticated identity."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "uid": uid,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(hours=JWT_EXPIRATION_HOURS)),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Claims of a valid token, or None when it is malformed, forged or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
