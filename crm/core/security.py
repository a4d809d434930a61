from typing import Optional
from datetime import datetime, timedelta, timezone
from jose import jwt
from crm.core.config import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT carrying identity claims.

    Production tokens are minted by the identity provider; this helper issues
    compatible tokens for local development and tests.

    Args:
        data: Dictionary containing claims (sub, email)
        expires_delta: Optional custom expiration time. Defaults to
            ACCESS_TOKEN_EXPIRE_MINUTES.

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    if settings.JWT_AUDIENCE:
        to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str, secret_key: str, algorithm: str, audience: Optional[str] = None) -> dict:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        secret_key: Key the identity provider signs with
        algorithm: Signing algorithm
        audience: Expected "aud" claim, if the provider sets one

    Returns:
        Dictionary containing token claims

    Raises:
        JWTError: If token is invalid or expired
    """
    options = {"verify_aud": audience is not None}
    return jwt.decode(token, secret_key, algorithms=[algorithm], audience=audience, options=options)
