"""
Account credentials: bcrypt password hashes and signed bearer tokens.

Tokens are short HS256 JWTs whose subject is the user id; they carry no
membership data, which is always re-derived from the user row per request.
"""
import os
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "").strip()
if len(JWT_SECRET_KEY) < 32:
    raise RuntimeError(
        "JWT_SECRET_KEY must be set to at least 32 characters "
        "(e.g. python -c 'import secrets; print(secrets.token_urlsafe(32))')"
    )
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))

TOKEN_AUDIENCE = "mcatprep"
MIN_PASSWORD_LENGTH = 8

# (pattern that must match, message when it does not)
PASSWORD_RULES = [
    (re.compile(r"[A-Za-z]"), "Password must contain at least one letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
]


class TokenError(Exception):
    """Bearer token could not be trusted (bad signature, expired, wrong claims)."""


# ==================== Passwords ====================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """False for accounts without a stored hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def validate_password_strength(password: str, email: Optional[str] = None) -> Tuple[bool, str]:
    """
    Check a registration password.

    Requires MIN_PASSWORD_LENGTH characters, a letter and a digit, and rejects
    passwords containing the email's local part (when it is 4+ characters).

    Returns:
        (is_valid, error_message); the message is empty when valid
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"

    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            return False, message

    local_part = (email or "").split("@")[0].lower()
    if len(local_part) >= 4 and local_part in password.lower():
        return False, "Password cannot contain your email address"

    return True, ""


# ==================== Tokens ====================

def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    issued_at = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": user_id,
        "aud": TOKEN_AUDIENCE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Decode an access token issued by create_access_token.

    Raises:
        TokenError: If the token is expired, tampered with or lacks a subject
    """
    try:
        claims = jwt.decode(
            token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM], audience=TOKEN_AUDIENCE
        )
    except ExpiredSignatureError:
        raise TokenError("Token has expired")
    except JWTError as e:
        raise TokenError(f"Invalid token: {e}")

    if not claims.get("sub"):
        raise TokenError("Token missing user ID")
    return claims


def get_user_id_from_token(token: str) -> str:
    return verify_token(token)["sub"]
