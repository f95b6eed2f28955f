from decimal import Decimal

import pytest
from starlette.websockets import WebSocketDisconnect

from spebit.models.transaction import Transaction
from spebit.models.wallet import UserWallet
from spebit.routes import websocket as websocket_routes


@pytest.fixture
def purchase(client, make_user, bitcoin, upi_method, buy):
    """A buyer with one transaction waiting in blockchain_submitted."""
    buyer = make_user("buyer@spebit.io")
    transaction_id = buy(buyer["headers"], bitcoin, upi_method).json()["data"]["transaction"][
        "TransactionID"
    ]
    response = client.put(
        f"/api/v1/users/transactions/{transaction_id}/blockchain",
        json={"BlockchainNetwork": "BEP20", "ReceiveAddress": "0xabc123"},
        headers=buyer["headers"],
    )
    assert response.status_code == 200
    buyer["transaction_id"] = transaction_id
    return buyer


def test_admin_routes_require_the_admin_role(client, make_user):
    user = make_user("plain@spebit.io")

    response = client.get("/api/v1/admins/transactions", headers=user["headers"])

    assert response.status_code == 403
    assert response.json()["data"]["redirect"] == "/dashboard"


def test_first_user_can_bootstrap_admin_once(client, make_user):
    first = make_user("first@spebit.io")
    second = make_user("second@spebit.io")

    response = client.post("/api/v1/admins/bootstrap", headers=first["headers"])
    assert response.status_code == 200
    assert "admin" in response.json()["data"]["roles"]

    assert client.post("/api/v1/admins/bootstrap", headers=second["headers"]).status_code == 403
    me = client.get("/api/v1/users/me", headers=first["headers"]).json()["data"]
    assert me["is_admin"] is True


def test_approve_sets_status_and_notes(client, make_admin, purchase):
    admin = make_admin()

    response = client.post(
        f"/api/v1/admins/transactions/{purchase['transaction_id']}/approve",
        json={"admin_notes": "Payment verified"},
        headers=admin["headers"],
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["Status"] == "approved"
    assert data["AdminNotes"] == "Payment verified"


def test_decision_is_final(client, make_admin, purchase, db):
    admin = make_admin()
    base = f"/api/v1/admins/transactions/{purchase['transaction_id']}"

    assert client.post(f"{base}/approve", headers=admin["headers"]).status_code == 200
    response = client.post(
        f"{base}/reject", json={"admin_notes": "changed my mind"}, headers=admin["headers"]
    )

    assert response.status_code == 400
    assert response.json()["data"]["current_status"] == "approved"
    db.expire_all()
    transaction = db.query(Transaction).filter(
        Transaction.TransactionID == purchase["transaction_id"]
    ).one()
    assert transaction.Status == "approved"
    assert transaction.AdminNotes is None


def test_reject_from_payment_uploaded_leaves_wallet_alone(
    client, make_user, make_admin, bitcoin, upi_method, buy, db
):
    buyer = make_user("buyer@spebit.io")
    admin = make_admin()
    client.get("/api/v1/users/wallet", headers=buyer["headers"])
    transaction_id = buy(buyer["headers"], bitcoin, upi_method).json()["data"]["transaction"][
        "TransactionID"
    ]

    response = client.post(
        f"/api/v1/admins/transactions/{transaction_id}/reject",
        json={"admin_notes": "Screenshot unreadable"},
        headers=admin["headers"],
    )

    assert response.status_code == 200
    assert response.json()["data"]["Status"] == "rejected"
    db.expire_all()
    wallet = db.query(UserWallet).filter(UserWallet.UserID == buyer["UserID"]).one()
    assert wallet.Balance == Decimal("0")
    assert wallet.ReferralEarnings == Decimal("0")


def test_decision_on_missing_transaction_is_not_found(client, make_admin):
    admin = make_admin()

    response = client.post(
        "/api/v1/admins/transactions/does-not-exist/approve", headers=admin["headers"]
    )

    assert response.status_code == 404


def test_transaction_listing_filters_by_status(client, make_admin, purchase, bitcoin, upi_method, buy):
    admin = make_admin()
    buy(purchase["headers"], bitcoin, upi_method, rupee_amount="1000")

    response = client.get(
        "/api/v1/admins/transactions?transaction_status=blockchain_submitted",
        headers=admin["headers"],
    )

    assert response.status_code == 200
    items = response.json()["data"]["items"]
    assert [i["TransactionID"] for i in items] == [purchase["transaction_id"]]
    assert items[0]["CryptoName"] == "Bitcoin"
    assert items[0]["PaymentMethodName"] == "UPI"

    bad = client.get(
        "/api/v1/admins/transactions?transaction_status=shipped", headers=admin["headers"]
    )
    assert bad.status_code == 400


def test_screenshot_url_points_at_storage(client, make_admin, purchase):
    admin = make_admin()

    response = client.get(
        f"/api/v1/admins/transactions/{purchase['transaction_id']}/screenshot",
        headers=admin["headers"],
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["url"] == f"/storage/{data['key']}"
    assert data["key"].startswith(f"{purchase['UserID']}/")


def test_analytics_counts_pending_transactions(client, make_admin, purchase, bitcoin, upi_method, buy):
    admin = make_admin()
    buy(purchase["headers"], bitcoin, upi_method, rupee_amount="1000")

    data = client.get("/api/v1/admins/analytics/summary", headers=admin["headers"]).json()["data"]

    assert data["transactions"]["total"] == 2
    assert data["transactions"]["pending"] == 2
    assert data["users"]["total"] == 2
    assert data["cryptocurrencies"]["active"] == 1


def test_user_management(client, make_user, make_admin):
    admin = make_admin()
    user = make_user("someone@spebit.io", full_name="Priya Sharma")

    found = client.get("/api/v1/admins/users?search=priya", headers=admin["headers"]).json()
    assert [u["UserID"] for u in found["data"]["items"]] == [user["UserID"]]

    blocked = client.put(f"/api/v1/admins/users/{user['UserID']}/block", headers=admin["headers"])
    assert blocked.json()["data"]["IsBlocked"] is True
    assert client.get("/api/v1/users/me", headers=user["headers"]).status_code == 403
    login = client.post(
        "/api/v1/users/login", json={"Email": "someone@spebit.io", "Password": "correct-horse-42"}
    )
    assert login.status_code == 403

    self_block = client.put(f"/api/v1/admins/users/{admin['UserID']}/block", headers=admin["headers"])
    assert self_block.status_code == 400

    revoke_self = client.put(
        f"/api/v1/admins/users/{admin['UserID']}/role",
        json={"Role": "admin", "Grant": False},
        headers=admin["headers"],
    )
    assert revoke_self.status_code == 400

    granted = client.put(
        f"/api/v1/admins/users/{user['UserID']}/role",
        json={"Role": "admin", "Grant": True},
        headers=admin["headers"],
    )
    assert sorted(granted.json()["data"]["roles"]) == ["admin", "user"]


def test_cryptocurrency_management(client, make_admin, purchase, bitcoin):
    admin = make_admin()

    created = client.post(
        "/api/v1/admins/cryptocurrencies",
        json={"Name": "Tether", "Symbol": " usdt ", "CurrentPrice": "88.50"},
        headers=admin["headers"],
    )
    assert created.status_code == 201
    tether = created.json()["data"]
    assert tether["Symbol"] == "USDT"

    updated = client.put(
        f"/api/v1/admins/cryptocurrencies/{tether['CryptoID']}",
        json={"CurrentPrice": "90"},
        headers=admin["headers"],
    )
    assert Decimal(updated.json()["data"]["CurrentPrice"]) == Decimal("90")

    toggled = client.put(
        f"/api/v1/admins/cryptocurrencies/{tether['CryptoID']}/toggle", headers=admin["headers"]
    )
    assert toggled.json()["data"]["IsActive"] is False
    listed = client.get("/api/v1/users/cryptocurrencies", headers=purchase["headers"]).json()
    assert [c["Symbol"] for c in listed["data"]["items"]] == ["BTC"]

    in_use = client.delete(f"/api/v1/admins/cryptocurrencies/{bitcoin}", headers=admin["headers"])
    assert in_use.status_code == 400
    removed = client.delete(
        f"/api/v1/admins/cryptocurrencies/{tether['CryptoID']}", headers=admin["headers"]
    )
    assert removed.status_code == 200


def test_watcher_socket_reports_approval(client, make_admin, purchase):
    admin = make_admin()
    url = f"/ws/transactions/{purchase['transaction_id']}?token={purchase['access_token']}"

    with client.websocket_connect(url) as socket:
        watching = socket.receive_json()
        assert watching["type"] == "transaction_watching"
        assert watching["data"]["status"] == "blockchain_submitted"

        client.post(
            f"/api/v1/admins/transactions/{purchase['transaction_id']}/approve",
            headers=admin["headers"],
        )

        message = socket.receive_json()
        assert message["type"] == "transaction_approved"
        assert message["data"]["redirect"] == "/dashboard"

    assert client.app.state.realtime.subscription_count == 0


def test_watcher_socket_reports_rejection_with_notes(client, make_admin, purchase):
    admin = make_admin()
    url = f"/ws/transactions/{purchase['transaction_id']}?token={purchase['access_token']}"

    with client.websocket_connect(url) as socket:
        socket.receive_json()
        client.post(
            f"/api/v1/admins/transactions/{purchase['transaction_id']}/reject",
            json={"admin_notes": "Amount mismatch"},
            headers=admin["headers"],
        )

        message = socket.receive_json()
        assert message["type"] == "transaction_rejected"
        assert message["data"]["admin_notes"] == "Amount mismatch"
        assert message["data"]["next_step"] == 1


def test_watcher_socket_times_out_without_touching_status(client, purchase, db, monkeypatch):
    monkeypatch.setattr(websocket_routes, "PROCESSING_WAIT_SECONDS", 0.1)
    url = f"/ws/transactions/{purchase['transaction_id']}?token={purchase['access_token']}"

    with client.websocket_connect(url) as socket:
        socket.receive_json()
        message = socket.receive_json()
        assert message["type"] == "transaction_processing"

    db.expire_all()
    transaction = db.query(Transaction).filter(
        Transaction.TransactionID == purchase["transaction_id"]
    ).one()
    assert transaction.Status == "blockchain_submitted"


def test_watcher_socket_for_decided_transaction_answers_at_once(client, make_admin, purchase):
    admin = make_admin()
    client.post(
        f"/api/v1/admins/transactions/{purchase['transaction_id']}/approve",
        headers=admin["headers"],
    )
    url = f"/ws/transactions/{purchase['transaction_id']}?token={purchase['access_token']}"

    with client.websocket_connect(url) as socket:
        assert socket.receive_json()["type"] == "transaction_watching"
        assert socket.receive_json()["type"] == "transaction_approved"


def test_watcher_socket_refuses_other_users(client, make_user, purchase):
    stranger = make_user("stranger@spebit.io")
    url = f"/ws/transactions/{purchase['transaction_id']}?token={stranger['access_token']}"

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(url) as socket:
            socket.receive_json()
