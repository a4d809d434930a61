"""Pytest configuration and fixtures."""

import os

# Settings and the engine are built at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import crm.models  # noqa: F401
from crm.core.feature_flags import StaticFlagProvider, get_flag_provider
from crm.core.identity import Identity, StaticIdentityVerifier
from crm.core.kv_store import InMemoryKeyValueStore, get_kv_store
from crm.core.payments import InMemoryPaymentProvider, get_payment_provider
from crm.core.roles import Role
from crm.crud import membership as membership_crud
from crm.crud import tenant as tenant_crud
from crm.database import Base, get_db
from crm.dependencies import get_identity_verifier
from crm.models.customer import Customer
from main import app

OWNER = Identity(user_id="user-owner", email="owner@example.com")
ADMIN = Identity(user_id="user-admin", email="admin@example.com")
MANAGER = Identity(user_id="user-manager", email="manager@example.com")
MEMBER = Identity(user_id="user-member", email="member@example.com")
VIEWER = Identity(user_id="user-viewer", email="viewer@example.com")
OUTSIDER = Identity(user_id="user-outsider", email="outsider@example.com")

TOKENS = {
    "owner-token": OWNER,
    "admin-token": ADMIN,
    "manager-token": MANAGER,
    "member-token": MEMBER,
    "viewer-token": VIEWER,
    "outsider-token": OUTSIDER,
}


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a fresh in-memory SQLite database for each test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def flags() -> StaticFlagProvider:
    return StaticFlagProvider.all_enabled()


@pytest.fixture
def payments() -> InMemoryPaymentProvider:
    return InMemoryPaymentProvider()


@pytest.fixture
def client(db_session: Session, kv_store, flags, payments):
    """TestClient with the database and every external capability overridden."""

    def override_get_db():
        try:
            yield db_session
        finally:
            # Same effect as closing a request session
            db_session.rollback()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_verifier] = lambda: StaticIdentityVerifier(TOKENS)
    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_flag_provider] = lambda: flags
    app.dependency_overrides[get_payment_provider] = lambda: payments
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant(db_session: Session):
    """A tenant with one member per role."""
    tenant, _ = tenant_crud.create_with_owner(
        db=db_session,
        name="Corner Shop",
        owner_user_id=OWNER.user_id,
        owner_email=OWNER.email
    )
    for identity, role in (
        (ADMIN, Role.admin),
        (MANAGER, Role.manager),
        (MEMBER, Role.member),
        (VIEWER, Role.viewer),
    ):
        membership_crud.create(
            db=db_session, user_id=identity.user_id, tenant_id=tenant.id, role=role, email=identity.email
        )
    return tenant


@pytest.fixture
def other_tenant(db_session: Session):
    tenant, _ = tenant_crud.create_with_owner(
        db=db_session,
        name="Other Shop",
        owner_user_id=OUTSIDER.user_id,
        owner_email=OUTSIDER.email
    )
    return tenant


@pytest.fixture
def customer(db_session: Session, tenant) -> Customer:
    customer = Customer(tenant_id=tenant.id, name="Ada Buyer", email="ada@example.com")
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


class BrokenStore(InMemoryKeyValueStore):
    """Key-value store whose every call fails, as during an outage."""

    def _fail(self, *args, **kwargs):
        raise ConnectionError("store is down")

    get = set = incr = delete = ping = _fail
