import pytest

from crm.core.feature_flags import FlagState
from crm.models.credit import CreditTransaction
from crm.models.order import Order
from crm.models.product import Product

from conftest import auth


def orders_url(tenant_id: int) -> str:
    return f"/api/tenants/{tenant_id}/orders"


@pytest.fixture
def product(db_session, tenant) -> Product:
    product = Product(tenant_id=tenant.id, name="Espresso beans", sku="BEAN-1", price_cents=250, stock_quantity=5)
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


def open_credit(client, tenant_id: int, customer_id: int, limit: int) -> int:
    response = client.put(
        f"/api/tenants/{tenant_id}/credit",
        json={"customerId": customer_id, "creditLimit": limit},
        headers=auth("admin-token"),
    )
    return response.json()["id"]


def balance(client, tenant_id: int, credit_id: int) -> int:
    response = client.get(
        f"/api/tenants/{tenant_id}/credit", params={"creditId": credit_id}, headers=auth("viewer-token")
    )
    return response.json()["currentBalance"]


def stock(db_session, product_id: int) -> int:
    return db_session.get(Product, product_id).stock_quantity


def test_create_order_with_product_and_free_lines(client, db_session, tenant, customer, product):
    response = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "items": [
            {"productId": product.id, "quantity": 2},
            {"description": "Gift wrap", "quantity": 1, "unitPriceCents": 100},
        ],
    }, headers=auth("manager-token"))

    assert response.status_code == 201
    data = response.json()
    assert data["totalCents"] == 600
    assert data["status"] == "pending"
    assert data["paymentMethod"] == "cash"
    assert [i["description"] for i in data["items"]] == ["Espresso beans", "Gift wrap"]
    assert data["items"][0]["lineTotalCents"] == 500
    assert stock(db_session, product.id) == 3


def test_free_line_needs_description_and_price(client, tenant):
    response = client.post(orders_url(tenant.id), json={
        "items": [{"description": "Mystery", "quantity": 1}],
    }, headers=auth("manager-token"))
    assert response.status_code == 400


def test_insufficient_stock_writes_nothing(client, db_session, tenant, product):
    response = client.post(orders_url(tenant.id), json={
        "items": [{"productId": product.id, "quantity": 3}, {"productId": product.id, "quantity": 3}],
    }, headers=auth("manager-token"))

    assert response.status_code == 400
    assert stock(db_session, product.id) == 5
    assert db_session.query(Order).count() == 0


def test_order_on_credit_charges_account(client, db_session, tenant, customer, product):
    credit_id = open_credit(client, tenant.id, customer.id, limit=1000)

    response = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 2}],
    }, headers=auth("manager-token"))

    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "paid"
    assert balance(client, tenant.id, credit_id) == 500

    charge = db_session.query(CreditTransaction).one()
    assert charge.order_id == order["id"]
    assert charge.idempotency_key == f"order-{order['id']}"


def test_order_over_credit_limit_rolls_back_everything(client, db_session, tenant, customer, product):
    credit_id = open_credit(client, tenant.id, customer.id, limit=400)

    response = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 2}],
    }, headers=auth("manager-token"))

    assert response.status_code == 400
    assert db_session.query(Order).count() == 0
    assert stock(db_session, product.id) == 5
    assert balance(client, tenant.id, credit_id) == 0


def test_order_on_credit_without_account(client, db_session, tenant, customer, product):
    response = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=auth("manager-token"))

    assert response.status_code == 404
    assert db_session.query(Order).count() == 0
    assert stock(db_session, product.id) == 5


def test_order_on_credit_needs_customer(client, tenant, product):
    response = client.post(orders_url(tenant.id), json={
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=auth("manager-token"))
    assert response.status_code == 400


def test_orders_on_credit_flag(client, tenant, customer, product, flags):
    open_credit(client, tenant.id, customer.id, limit=1000)
    flags.set("orders_on_credit", FlagState(enabled=True, disabled=True))

    response = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=auth("manager-token"))
    assert response.status_code == 503


def test_cancel_credit_order_restores_stock_and_balance(client, db_session, tenant, customer, product):
    credit_id = open_credit(client, tenant.id, customer.id, limit=1000)
    order = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 2}],
    }, headers=auth("manager-token")).json()

    response = client.patch(
        f"{orders_url(tenant.id)}/{order['id']}", json={"status": "cancelled"}, headers=auth("manager-token")
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert stock(db_session, product.id) == 5
    assert balance(client, tenant.id, credit_id) == 0

    response = client.patch(
        f"{orders_url(tenant.id)}/{order['id']}", json={"status": "paid"}, headers=auth("manager-token")
    )
    assert response.status_code == 400


def test_idempotency_key_header_replays_response(client, db_session, tenant, product):
    payload = {"items": [{"productId": product.id, "quantity": 1}]}
    headers = {**auth("manager-token"), "Idempotency-Key": "order-abc"}

    first = client.post(orders_url(tenant.id), json=payload, headers=headers)
    second = client.post(orders_url(tenant.id), json=payload, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json() == first.json()
    assert second.headers["Idempotent-Replayed"] == "true"
    assert db_session.query(Order).count() == 1
    assert stock(db_session, product.id) == 4


def test_failed_request_releases_idempotency_key(client, tenant, product):
    headers = {**auth("manager-token"), "Idempotency-Key": "order-retry"}

    response = client.post(orders_url(tenant.id), json={
        "items": [{"productId": product.id, "quantity": 50}],
    }, headers=headers)
    assert response.status_code == 400

    response = client.post(orders_url(tenant.id), json={
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=headers)
    assert response.status_code == 201


def test_list_and_get_orders(client, tenant, customer, product):
    created = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=auth("manager-token")).json()

    listed = client.get(orders_url(tenant.id), params={"customerId": customer.id}, headers=auth("viewer-token"))
    assert [o["id"] for o in listed.json()] == [created["id"]]

    fetched = client.get(f"{orders_url(tenant.id)}/{created['id']}", headers=auth("viewer-token"))
    assert fetched.json()["items"][0]["productId"] == product.id

    assert client.get(f"{orders_url(tenant.id)}/9999", headers=auth("viewer-token")).status_code == 404


def test_cancel_credit_order_after_account_closed(client, db_session, tenant, customer, product):
    credit_id = open_credit(client, tenant.id, customer.id, limit=1000)
    order = client.post(orders_url(tenant.id), json={
        "customerId": customer.id,
        "paymentMethod": "credit",
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=auth("manager-token")).json()
    client.put(
        f"/api/tenants/{tenant.id}/credit",
        json={"creditId": credit_id, "status": "closed"},
        headers=auth("admin-token"),
    )

    response = client.patch(
        f"{orders_url(tenant.id)}/{order['id']}", json={"status": "cancelled"}, headers=auth("manager-token")
    )
    assert response.status_code == 200
    assert balance(client, tenant.id, credit_id) == 0
    assert stock(db_session, product.id) == 5


@pytest.mark.parametrize("item", [
    {"description": "Gold bar", "quantity": 1, "unitPriceCents": 10**20},
    {"description": "Gold bar", "quantity": 10**20, "unitPriceCents": 1},
    {"productId": 10**20, "quantity": 1},
])
def test_out_of_range_item_values(client, tenant, item):
    response = client.post(orders_url(tenant.id), json={"items": [item]}, headers=auth("manager-token"))
    assert response.status_code == 400


def test_order_total_is_bounded(client, db_session, tenant):
    response = client.post(orders_url(tenant.id), json={
        "items": [{"description": "Gold bar", "quantity": 1_000_000, "unitPriceCents": 10**15}],
    }, headers=auth("manager-token"))
    assert response.status_code == 400
    assert response.json()["error"] == "Order total is too large"
    assert db_session.query(Order).count() == 0


def test_out_of_range_paging(client, tenant):
    for params in ({"skip": 10**20}, {"limit": 10**20}, {"customerId": 10**20}):
        response = client.get(orders_url(tenant.id), params=params, headers=auth("viewer-token"))
        assert response.status_code == 400
    assert client.get(f"{orders_url(tenant.id)}/{10**20}", headers=auth("viewer-token")).status_code == 400
