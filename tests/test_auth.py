import re

import pytest

from spebit.controllers import user_controller
from conftest import PASSWORD, auth_headers


def login(client, email, password=PASSWORD):
    return client.post("/api/v1/users/login", json={"Email": email, "Password": password})


def test_register_validates_profile_fields(client):
    response = client.post(
        "/api/v1/users/register",
        json={
            "Email": "not-an-email",
            "Password": "short",
            "FullName": "",
            "MobileNumber": "12ab",
        },
    )

    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["data"]["errors"]}
    assert {"Email", "Password", "FullName", "MobileNumber"} <= fields


def test_register_rejects_duplicate_email(client, make_user):
    make_user("taken@spebit.io")

    response = client.post(
        "/api/v1/users/register",
        json={"Email": "taken@spebit.io", "Password": "password-123", "FullName": "Again"},
    )

    assert response.status_code == 400


def test_login_with_wrong_password_is_unauthorized(client, make_user):
    make_user("user@spebit.io")

    assert login(client, "user@spebit.io", "wrong-password").status_code == 401
    assert login(client, "nobody@spebit.io").status_code == 401


def test_session_reports_roles(client, make_user):
    user = make_user("user@spebit.io")

    response = client.get("/api/v1/users/me", headers=user["headers"])

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["Email"] == "user@spebit.io"
    assert data["roles"] == ["user"]
    assert data["is_admin"] is False
    assert "Password" not in data


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/v1/users/me", headers=auth_headers("not-a-token"))
    assert response.status_code == 401


def test_refresh_rotates_the_refresh_token(client, make_user):
    user = make_user("user@spebit.io")

    response = client.post("/api/v1/users/refresh", json={"refresh_token": user["refresh_token"]})
    assert response.status_code == 200
    tokens = response.json()["data"]
    assert client.get("/api/v1/users/me", headers=auth_headers(tokens["access_token"])).status_code == 200

    reused = client.post("/api/v1/users/refresh", json={"refresh_token": user["refresh_token"]})
    assert reused.status_code == 401

    # Access tokens are not refresh tokens
    wrong_type = client.post("/api/v1/users/refresh", json={"refresh_token": user["access_token"]})
    assert wrong_type.status_code == 401


def test_logout_revokes_the_refresh_token(client, make_user):
    user = make_user("user@spebit.io")

    response = client.post(
        "/api/v1/users/logout",
        json={"refresh_token": user["refresh_token"]},
        headers=user["headers"],
    )

    assert response.status_code == 200
    refreshed = client.post("/api/v1/users/refresh", json={"refresh_token": user["refresh_token"]})
    assert refreshed.status_code == 401


def test_sign_in_is_pushed_to_open_user_sockets(client, make_user):
    user = make_user("user@spebit.io")

    with client.websocket_connect(f"/ws/user?token={user['access_token']}") as socket:
        assert socket.receive_json()["type"] == "connection_status"
        assert login(client, "user@spebit.io").status_code == 200
        message = socket.receive_json()

    assert message["type"] == "auth_state_changed"
    assert message["data"]["event"] == "SIGNED_IN"


def test_user_socket_rejects_bad_tokens(client):
    from starlette.websockets import WebSocketDisconnect

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/user?token=garbage") as socket:
            socket.receive_json()


def test_admin_socket_requires_admin_role(client, make_user):
    from starlette.websockets import WebSocketDisconnect

    user = make_user("user@spebit.io")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/admin?token={user['access_token']}") as socket:
            socket.receive_json()


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send_email(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(user_controller, "send_email", fake_send_email)
    return sent


def test_password_reset_flow(client, make_user, outbox):
    make_user("forgetful@spebit.io")

    response = client.post("/api/v1/users/password-reset", json={"Email": "forgetful@spebit.io"})

    assert response.status_code == 200
    assert len(outbox) == 1
    token = re.search(r"reset_token=(\S+)", outbox[0]["body"]).group(1)

    confirmed = client.post(
        "/api/v1/users/password-reset/confirm",
        json={"token": token, "NewPassword": "brand-new-secret"},
    )
    assert confirmed.status_code == 200
    assert login(client, "forgetful@spebit.io").status_code == 401
    assert login(client, "forgetful@spebit.io", "brand-new-secret").status_code == 200


def test_password_reset_does_not_reveal_unknown_emails(client, outbox):
    response = client.post("/api/v1/users/password-reset", json={"Email": "ghost@spebit.io"})

    assert response.status_code == 200
    assert outbox == []


def test_password_reset_email_failures_are_swallowed(client, make_user, monkeypatch):
    make_user("forgetful@spebit.io")

    def broken_send_email(to_email, subject, body):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(user_controller, "send_email", broken_send_email)

    response = client.post("/api/v1/users/password-reset", json={"Email": "forgetful@spebit.io"})
    assert response.status_code == 200


def test_password_reset_confirm_rejects_bad_tokens(client, make_user):
    user = make_user("user@spebit.io")

    for token in ("garbage", user["access_token"]):
        response = client.post(
            "/api/v1/users/password-reset/confirm",
            json={"token": token, "NewPassword": "brand-new-secret"},
        )
        assert response.status_code == 400
