from typing import Annotated, Optional
from fastapi import Depends, Path, Request
from crm.core.config import settings
from crm.core.exceptions import Unauthenticated
from crm.core.identity import Identity, IdentityVerifier, JWTIdentityVerifier
from crm.schemas.common import MAX_ID

# Path parameter naming a row by its integer primary key
ResourceId = Annotated[int, Path(ge=1, le=MAX_ID)]

_verifier: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    global _verifier
    if _verifier is None:
        _verifier = JWTIdentityVerifier(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            audience=settings.JWT_AUDIENCE,
        )
    return _verifier


def get_current_identity(
    request: Request,
    verifier: IdentityVerifier = Depends(get_identity_verifier)
) -> Identity:
    """
    Extract the bearer token from the Authorization header and verify it.

    Args:
        request: FastAPI Request to extract Authorization header
        verifier: Identity verifier for the configured provider

    Returns:
        Identity of the caller

    Raises:
        Unauthenticated: If the header is missing or the token is not valid
    """
    authorization = request.headers.get("Authorization")
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated(headers={"WWW-Authenticate": "Bearer"})

    token = authorization[len("Bearer "):].strip()
    identity = verifier.verify(token) if token else None
    if identity is None:
        raise Unauthenticated("Could not validate credentials", headers={"WWW-Authenticate": "Bearer"})

    return identity
