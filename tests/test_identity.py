from datetime import timedelta

from crm.core.identity import JWTIdentityVerifier
from crm.core.security import create_access_token
from crm.core.config import settings

from conftest import auth


def test_jwt_verifier_reads_subject_and_email():
    token = create_access_token({"sub": "user-1", "email": "u1@example.com"})
    identity = JWTIdentityVerifier(settings.SECRET_KEY, settings.ALGORITHM).verify(token)

    assert identity is not None
    assert identity.user_id == "user-1"
    assert identity.email == "u1@example.com"


def test_jwt_verifier_accepts_legacy_id_claim():
    token = create_access_token({"id": 42})
    identity = JWTIdentityVerifier(settings.SECRET_KEY, settings.ALGORITHM).verify(token)

    assert identity is not None
    assert identity.user_id == "42"


def test_jwt_verifier_rejects_wrong_key_and_expired_tokens():
    verifier = JWTIdentityVerifier("another-secret", settings.ALGORITHM)
    assert verifier.verify(create_access_token({"sub": "user-1"})) is None

    expired = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-10))
    assert JWTIdentityVerifier(settings.SECRET_KEY, settings.ALGORITHM).verify(expired) is None


def test_jwt_verifier_checks_audience():
    token = create_access_token({"sub": "user-1", "aud": "someone-else"})
    verifier = JWTIdentityVerifier(settings.SECRET_KEY, settings.ALGORITHM, audience="crm-api")
    assert verifier.verify(token) is None

    token = create_access_token({"sub": "user-1", "aud": "crm-api"})
    assert verifier.verify(token).user_id == "user-1"


def test_missing_or_invalid_token_is_401(client, tenant):
    response = client.get(f"/api/tenants/{tenant.id}/customers")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = client.get(f"/api/tenants/{tenant.id}/customers", headers=auth("not-a-token"))
    assert response.status_code == 401
