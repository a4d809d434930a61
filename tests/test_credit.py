import logging

import pytest

from crm.core.feature_flags import FlagState
from crm.crud import credit_account as credit_account_crud
from crm.models.credit import CreditAccount, CreditTransaction
from crm.schemas.common import BIGINT_MAX, MAX_AMOUNT

from conftest import auth


def credit_url(tenant_id: int) -> str:
    return f"/api/tenants/{tenant_id}/credit"


def create_account(client, tenant_id: int, customer_id: int, limit: int = 10000) -> int:
    response = client.put(
        credit_url(tenant_id),
        json={"customerId": customer_id, "creditLimit": limit},
        headers=auth("admin-token"),
    )
    assert response.status_code == 201, response.json()
    return response.json()["id"]


def post_transaction(client, tenant_id: int, payload: dict, token: str = "manager-token"):
    return client.post(f"{credit_url(tenant_id)}/transactions", json=payload, headers=auth(token))


def summary(client, tenant_id: int, credit_id: int) -> dict:
    response = client.get(credit_url(tenant_id), params={"creditId": credit_id}, headers=auth("viewer-token"))
    assert response.status_code == 200
    return response.json()


class TestCreditAccounts:

    def test_create_then_update(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id, limit=10000)

        response = client.put(
            credit_url(tenant.id),
            json={"creditId": credit_id, "creditLimit": 5000},
            headers=auth("admin-token"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == credit_id
        assert data["creditLimit"] == 5000
        assert data["status"] == "active"

    def test_update_by_customer_id(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)

        response = client.put(
            credit_url(tenant.id),
            json={"customerId": customer.id, "status": "suspended"},
            headers=auth("admin-token"),
        )
        assert response.status_code == 200
        assert response.json()["id"] == credit_id
        assert response.json()["status"] == "suspended"

    def test_new_account_requires_customer_id(self, client, tenant):
        response = client.put(credit_url(tenant.id), json={"creditLimit": 100}, headers=auth("admin-token"))
        assert response.status_code == 400
        assert response.json()["error"] == "customerId is required for new credit accounts"

    def test_new_account_for_unknown_customer(self, client, tenant):
        response = client.put(credit_url(tenant.id), json={"customerId": 9999}, headers=auth("admin-token"))
        assert response.status_code == 404

    def test_negative_limit_rejected(self, client, tenant, customer):
        response = client.put(
            credit_url(tenant.id),
            json={"customerId": customer.id, "creditLimit": -1},
            headers=auth("admin-token"),
        )
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "creditLimit"

    def test_manager_cannot_manage_accounts(self, client, tenant, customer):
        response = client.put(
            credit_url(tenant.id), json={"customerId": customer.id}, headers=auth("manager-token")
        )
        assert response.status_code == 403

    def test_closed_account_cannot_be_reopened(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        headers = auth("admin-token")

        response = client.put(credit_url(tenant.id), json={"creditId": credit_id, "status": "closed"}, headers=headers)
        assert response.status_code == 200

        response = client.put(credit_url(tenant.id), json={"creditId": credit_id, "status": "active"}, headers=headers)
        assert response.status_code == 400

    def test_concurrent_duplicate_create_is_conflict(self, client, tenant, customer, monkeypatch):
        create_account(client, tenant.id, customer.id)
        # The second request does not see the first account, as if both ran at once
        monkeypatch.setattr(credit_account_crud, "get_by_customer", lambda *args, **kwargs: None)

        response = client.put(
            credit_url(tenant.id), json={"customerId": customer.id}, headers=auth("admin-token")
        )
        assert response.status_code == 409

    def test_summary_requires_an_identifier(self, client, tenant):
        response = client.get(credit_url(tenant.id), headers=auth("viewer-token"))
        assert response.status_code == 400

    def test_summary_unknown_account(self, client, tenant):
        response = client.get(credit_url(tenant.id), params={"creditId": 9999}, headers=auth("viewer-token"))
        assert response.status_code == 404

    def test_accounts_are_tenant_scoped(self, client, tenant, other_tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)

        response = client.get(
            credit_url(other_tenant.id), params={"creditId": credit_id}, headers=auth("outsider-token")
        )
        assert response.status_code == 404


class TestLedger:

    def test_balance_is_sum_of_completed_transactions(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id, limit=10000)

        assert post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 3000,
        }).status_code == 201
        payment = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "payment", "amount": 1000,
        })
        assert payment.status_code == 201
        assert payment.json()["amount"] == -1000
        assert post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "fee", "amount": 200, "status": "pending",
        }).status_code == 201

        data = summary(client, tenant.id, credit_id)
        assert data["creditLimit"] == 10000
        assert data["currentBalance"] == 2000
        assert data["availableCredit"] == 8000
        assert data["customerId"] == customer.id
        assert len(data["recentTransactions"]) == 3
        assert data["recentTransactions"][0]["transactionType"] == "fee"

    def test_summary_by_customer_id(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = client.get(
            credit_url(tenant.id), params={"customerId": customer.id}, headers=auth("viewer-token")
        )
        assert response.status_code == 200
        assert response.json()["creditId"] == credit_id
        assert response.json()["currentBalance"] == 0

    def test_recent_transactions_capped_at_ten(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        for _ in range(12):
            post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 10})

        data = summary(client, tenant.id, credit_id)
        assert data["currentBalance"] == 120
        assert len(data["recentTransactions"]) == 10
        ids = [t["id"] for t in data["recentTransactions"]]
        assert ids == sorted(ids, reverse=True)

    def test_idempotent_replay(self, client, db_session, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        payload = {"creditId": credit_id, "transactionType": "charge", "amount": 2500, "idempotencyKey": "pos-1"}

        first = post_transaction(client, tenant.id, payload)
        second = post_transaction(client, tenant.id, payload)

        assert first.status_code == 201
        assert second.status_code == 201
        assert first.json()["id"] == second.json()["id"]
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 2500
        assert db_session.query(CreditTransaction).count() == 1

    def test_reused_key_on_another_account_is_conflict(self, client, db_session, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        other = client.post(
            f"/api/tenants/{tenant.id}/customers", json={"name": "Grace"}, headers=auth("manager-token")
        ).json()
        other_credit_id = create_account(client, tenant.id, other["id"])

        post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 10, "idempotencyKey": "k-1",
        })
        response = post_transaction(client, tenant.id, {
            "creditId": other_credit_id, "transactionType": "charge", "amount": 10, "idempotencyKey": "k-1",
        })
        assert response.status_code == 409

    def test_key_is_synthesized_when_missing(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        first = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 5})
        second = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 5})

        key = first.json()["idempotencyKey"]
        assert key.startswith(f"{tenant.id}-")
        assert key != second.json()["idempotencyKey"]
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 10

    def test_charge_over_limit_is_rejected(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id, limit=1000)

        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 1500,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Charge exceeds available credit"
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 0

        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 1000,
        })
        assert response.status_code == 201
        assert summary(client, tenant.id, credit_id)["availableCredit"] == 0

    def test_read_path_reports_negative_available_credit(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id, limit=1000)
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 1000})

        client.put(credit_url(tenant.id), json={"creditId": credit_id, "creditLimit": 400}, headers=auth("admin-token"))

        data = summary(client, tenant.id, credit_id)
        assert data["currentBalance"] == 1000
        assert data["availableCredit"] == -600

    @pytest.mark.parametrize(
        "transaction_type,amount",
        [("charge", -100), ("charge", 0), ("payment", -5), ("fee", 0), ("adjustment", 0)],
    )
    def test_invalid_amounts(self, client, tenant, customer, transaction_type, amount):
        credit_id = create_account(client, tenant.id, customer.id)
        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": transaction_type, "amount": amount,
        })
        assert response.status_code == 400

    def test_non_integer_amount_rejected(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        for amount in (10.5, "10"):
            response = post_transaction(client, tenant.id, {
                "creditId": credit_id, "transactionType": "charge", "amount": amount,
            })
            assert response.status_code == 400
            assert response.json()["details"][0]["field"] == "amount"

    def test_unknown_transaction_type_rejected(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "refund", "amount": 10,
        })
        assert response.status_code == 400

    def test_adjustment_keeps_sign(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 500})
        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "adjustment", "amount": -200,
        })
        assert response.status_code == 201
        assert response.json()["amount"] == -200
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 300

    def test_charge_requires_active_account(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        client.put(credit_url(tenant.id), json={"creditId": credit_id, "status": "suspended"}, headers=auth("admin-token"))

        response = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 10})
        assert response.status_code == 400

        response = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "payment", "amount": 10})
        assert response.status_code == 201

    def test_closed_account_takes_no_transactions(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        client.put(credit_url(tenant.id), json={"creditId": credit_id, "status": "closed"}, headers=auth("admin-token"))

        response = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "payment", "amount": 10})
        assert response.status_code == 400
        assert response.json()["error"] == "Credit account is closed"

    def test_transaction_on_unknown_account(self, client, tenant):
        response = post_transaction(client, tenant.id, {"creditId": 9999, "transactionType": "charge", "amount": 10})
        assert response.status_code == 404

    def test_initial_status_must_be_pending_or_completed(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 10, "status": "reversed",
        })
        assert response.status_code == 400

    def test_viewer_cannot_record_transactions(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = post_transaction(
            client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 10}, token="viewer-token"
        )
        assert response.status_code == 403


class TestTransactionLifecycle:

    def test_pending_charge_counts_once_completed(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        pending = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 500, "status": "pending",
        }).json()
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 0

        response = client.patch(
            f"{credit_url(tenant.id)}/transactions/{pending['id']}",
            json={"status": "completed"},
            headers=auth("manager-token"),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 500

    def test_completing_over_limit_is_rejected(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id, limit=1000)
        pending = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 800, "status": "pending",
        }).json()
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 500})

        response = client.patch(
            f"{credit_url(tenant.id)}/transactions/{pending['id']}",
            json={"status": "completed"},
            headers=auth("manager-token"),
        )
        assert response.status_code == 400
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 500

    def test_completed_transactions_are_immutable(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        completed = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 100,
        }).json()

        response = client.patch(
            f"{credit_url(tenant.id)}/transactions/{completed['id']}",
            json={"status": "failed"},
            headers=auth("manager-token"),
        )
        assert response.status_code == 400

    def test_reversal_appends_compensating_adjustment(self, client, db_session, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        charge = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 700,
        }).json()

        url = f"{credit_url(tenant.id)}/transactions/{charge['id']}/reverse"
        response = client.post(url, headers=auth("manager-token"))
        assert response.status_code == 201
        reversal = response.json()
        assert reversal["transactionType"] == "adjustment"
        assert reversal["amount"] == -700
        assert reversal["reversalOfId"] == charge["id"]
        assert reversal["status"] == "completed"

        original = db_session.get(CreditTransaction, charge["id"])
        assert original.amount == 700
        assert original.status.value == "completed"
        assert summary(client, tenant.id, credit_id)["currentBalance"] == 0

        assert client.post(url, headers=auth("manager-token")).status_code == 409

    def test_pending_transactions_cannot_be_reversed(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        pending = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "charge", "amount": 50, "status": "pending",
        }).json()

        response = client.post(
            f"{credit_url(tenant.id)}/transactions/{pending['id']}/reverse", headers=auth("manager-token")
        )
        assert response.status_code == 400


class TestTransactionList:

    def test_limit_is_clamped(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 1})
        url = f"{credit_url(tenant.id)}/transactions"

        response = client.get(url, params={"limit": 500}, headers=auth("viewer-token"))
        assert response.status_code == 200
        assert response.json()["limit"] == 100
        assert len(response.json()["transactions"]) == 1

        response = client.get(url, params={"limit": 0, "offset": -5}, headers=auth("viewer-token"))
        assert response.json()["limit"] == 1
        assert response.json()["offset"] == 0

    def test_default_limit(self, client, tenant):
        response = client.get(f"{credit_url(tenant.id)}/transactions", headers=auth("viewer-token"))
        assert response.status_code == 200
        assert response.json() == {"transactions": [], "limit": 50, "offset": 0}

    def test_filters(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 100})
        post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "payment", "amount": 40})
        post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "fee", "amount": 5, "status": "pending",
        })
        url = f"{credit_url(tenant.id)}/transactions"

        payments = client.get(url, params={"type": "payment"}, headers=auth("viewer-token")).json()
        assert [t["amount"] for t in payments["transactions"]] == [-40]

        pending = client.get(url, params={"status": "pending"}, headers=auth("viewer-token")).json()
        assert [t["transactionType"] for t in pending["transactions"]] == ["fee"]

        paged = client.get(url, params={"creditId": credit_id, "limit": 2, "offset": 1}, headers=auth("viewer-token"))
        assert [t["transactionType"] for t in paged.json()["transactions"]] == ["payment", "charge"]


class TestSetupIntentAndFlags:

    def test_setup_intent_is_stored_on_account(self, client, db_session, tenant, customer, payments):
        credit_id = create_account(client, tenant.id, customer.id)

        response = client.post(
            f"{credit_url(tenant.id)}/setup-intent", json={"creditId": credit_id}, headers=auth("admin-token")
        )
        assert response.status_code == 200
        data = response.json()
        assert data["setupIntentId"].startswith("seti_")
        assert data["clientSecret"]

        assert payments.intents[0]["metadata"]["credit_id"] == str(credit_id)
        account = db_session.get(CreditAccount, credit_id)
        assert account.setup_intent_id == data["setupIntentId"]
        assert account.payment_customer_ref is not None

    def test_credit_writes_kill_switch(self, client, tenant, customer, flags):
        credit_id = create_account(client, tenant.id, customer.id)
        flags.set("credit_writes", FlagState(enabled=True, disabled=True))

        response = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 1})
        assert response.status_code == 503
        assert response.json()["error"] == "Feature 'credit_writes' is disabled"

        assert summary(client, tenant.id, credit_id)["currentBalance"] == 0

    def test_setup_intent_flag(self, client, tenant, customer, flags):
        credit_id = create_account(client, tenant.id, customer.id)
        flags.set("credit_setup_intent", FlagState(enabled=False))

        response = client.post(
            f"{credit_url(tenant.id)}/setup-intent", json={"creditId": credit_id}, headers=auth("admin-token")
        )
        assert response.status_code == 503

    def test_confirm_payment_method(self, client, tenant, customer, payments):
        credit_id = create_account(client, tenant.id, customer.id)
        url = f"{credit_url(tenant.id)}/payment-method"

        response = client.post(url, json={"creditId": credit_id}, headers=auth("admin-token"))
        assert response.status_code == 400
        assert response.json()["error"] == "No payment method setup was started for this credit account"

        intent = client.post(
            f"{credit_url(tenant.id)}/setup-intent", json={"creditId": credit_id}, headers=auth("admin-token")
        ).json()
        response = client.post(url, json={"creditId": credit_id}, headers=auth("admin-token"))
        assert response.status_code == 400
        assert response.json()["error"] == "Payment method setup is requires_payment_method"

        payments.complete(intent["setupIntentId"], "pm_card_visa")
        response = client.post(url, json={"creditId": credit_id}, headers=auth("admin-token"))
        assert response.status_code == 200
        assert response.json()["paymentMethodRef"] == "pm_card_visa"

    def test_confirm_payment_method_needs_admin(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = client.post(
            f"{credit_url(tenant.id)}/payment-method", json={"creditId": credit_id}, headers=auth("manager-token")
        )
        assert response.status_code == 403


class TestOutOfRangeValues:

    def test_huge_payment_amount(self, client, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "payment", "amount": 10**20,
        })
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "amount"

    def test_huge_credit_limit(self, client, tenant, customer):
        response = client.put(
            credit_url(tenant.id),
            json={"customerId": customer.id, "creditLimit": 10**20},
            headers=auth("admin-token"),
        )
        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "creditLimit"

    def test_huge_ids(self, client, tenant):
        response = post_transaction(client, tenant.id, {"creditId": 10**20, "transactionType": "charge", "amount": 1})
        assert response.status_code == 400

        response = client.get(credit_url(tenant.id), params={"creditId": 10**20}, headers=auth("viewer-token"))
        assert response.status_code == 400

        response = client.patch(
            f"{credit_url(tenant.id)}/transactions/{10**20}", json={"status": "completed"}, headers=auth("manager-token")
        )
        assert response.status_code == 400

        response = client.get(f"/api/tenants/{10**20}/credit/transactions", headers=auth("viewer-token"))
        assert response.status_code == 400

    def test_balance_cannot_leave_64_bit_range(self, client, db_session, tenant, customer):
        credit_id = create_account(client, tenant.id, customer.id)
        db_session.add(CreditTransaction(
            tenant_id=tenant.id,
            credit_id=credit_id,
            transaction_type="adjustment",
            amount=-(BIGINT_MAX - 10),
            status="completed",
            idempotency_key="seed-low-balance",
        ))
        db_session.commit()

        response = post_transaction(client, tenant.id, {
            "creditId": credit_id, "transactionType": "payment", "amount": MAX_AMOUNT,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Amount would take the account balance out of range"
        assert summary(client, tenant.id, credit_id)["currentBalance"] == -(BIGINT_MAX - 10)

    def test_huge_list_offset_is_clamped(self, client, tenant):
        response = client.get(
            f"{credit_url(tenant.id)}/transactions", params={"offset": 10**20}, headers=auth("viewer-token")
        )
        assert response.status_code == 200
        assert response.json()["offset"] == BIGINT_MAX


def test_rejected_transaction_is_not_logged_as_error(client, tenant, customer, caplog):
    credit_id = create_account(client, tenant.id, customer.id, limit=100)
    caplog.set_level(logging.INFO, logger="crm")

    response = post_transaction(client, tenant.id, {"creditId": credit_id, "transactionType": "charge", "amount": 500})
    assert response.status_code == 400

    records = [r for r in caplog.records if r.name == "crm"]
    assert not [r for r in records if r.levelno >= logging.ERROR]
    assert any("Credit transaction rejected" in r.getMessage() for r in records)
