"""
Caller identity verification.

Authentication is delegated to an external identity provider. The API only
verifies the bearer token it receives and extracts the subject. Verification
sits behind ``IdentityVerifier`` so routes can be exercised without a live
provider.
"""
from dataclasses import dataclass
from typing import Dict, Optional
from jose import JWTError
from crm.core.security import verify_token


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None


class IdentityVerifier:
    """Resolves a bearer token to an Identity, or None if the token is not valid."""

    def verify(self, token: str) -> Optional[Identity]:
        raise NotImplementedError


class JWTIdentityVerifier(IdentityVerifier):
    """Verifies provider-issued JWTs signed with a shared secret."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience

    def verify(self, token: str) -> Optional[Identity]:
        try:
            payload = verify_token(token, self.secret_key, self.algorithm, self.audience)
        except JWTError:
            return None

        # Older tokens carried the user id under "id" instead of "sub"
        user_id = payload.get("sub") or payload.get("id")
        if not user_id:
            return None
        return Identity(user_id=str(user_id), email=payload.get("email"))


class StaticIdentityVerifier(IdentityVerifier):
    """In-memory token table, used by tests and local tooling."""

    def __init__(self, tokens: Optional[Dict[str, Identity]] = None):
        self.tokens: Dict[str, Identity] = dict(tokens or {})

    def add(self, token: str, identity: Identity) -> None:
        self.tokens[token] = identity

    def verify(self, token: str) -> Optional[Identity]:
        return self.tokens.get(token)
