from crm.models.membership import Membership
from crm.models.tenant import Tenant


def test_create_tenant_with_owner(client, db_session):
    response = client.post(
        "/api/admin/tenants",
        json={"name": "New Shop", "ownerUserId": "user-new", "ownerEmail": "new@example.com"},
        headers={"x-admin-key": "test-admin-key"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["tenantName"] == "New Shop"
    assert data["ownerRole"] == "owner"

    membership = db_session.query(Membership).filter_by(tenant_id=data["tenantId"]).one()
    assert membership.user_id == "user-new"
    assert membership.role == "owner"


def test_admin_key_required(client, db_session):
    payload = {"name": "New Shop", "ownerUserId": "user-new"}

    assert client.post("/api/admin/tenants", json=payload).status_code == 403
    assert client.post("/api/admin/tenants", json=payload, headers={"x-admin-key": "wrong"}).status_code == 403
    assert db_session.query(Tenant).count() == 0
