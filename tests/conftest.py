import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="spebit-storage-")
os.environ["PROCESSING_WAIT_SECONDS"] = "5"
os.environ["LOG_LEVEL"] = "WARNING"

from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient

from spebit.core import rate_limiter
from spebit.core.database import Base, SessionLocal, engine
from spebit.core.price_monitor import PriceMonitor
from spebit.core.realtime import RealtimeHub
from spebit.core.storage import LocalObjectStorage
from spebit.main import app
from spebit.models.cryptocurrency import Cryptocurrency
from spebit.models.payment_method import PaymentMethod
from spebit.models.user import UserRole

PASSWORD = "correct-horse-42"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(rate_limiter, "redis_client", client)
    return client


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def app_services(tmp_path):
    hub = RealtimeHub()
    app.state.realtime = hub
    app.state.storage = LocalObjectStorage(str(tmp_path / "screenshots"), "/storage")
    app.state.price_monitor = PriceMonitor(hub, Decimal("5"))
    return app.state


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client):
    """Register and sign in a user; returns the login payload plus request headers."""

    def _make_user(email: str, referral_code: str = None, full_name: str = "Test User"):
        body = {
            "Email": email,
            "Password": PASSWORD,
            "FullName": full_name,
            "MobileNumber": "9876543210",
            "CountryCode": "+91",
        }
        if referral_code:
            body["ReferralCode"] = referral_code
        response = client.post("/api/v1/users/register", json=body)
        assert response.status_code == 201, response.json()

        response = client.post(
            "/api/v1/users/login", json={"Email": email, "Password": PASSWORD}
        )
        assert response.status_code == 200, response.json()
        data = response.json()["data"]
        data["headers"] = auth_headers(data["access_token"])
        return data

    return _make_user


@pytest.fixture
def make_admin(make_user, db):
    def _make_admin(email: str = "admin@spebit.io"):
        user = make_user(email, full_name="Admin")
        db.add(UserRole(UserID=user["UserID"], Role="admin"))
        db.commit()
        return user

    return _make_admin


@pytest.fixture
def bitcoin(db):
    crypto = Cryptocurrency(
        Name="Bitcoin", Symbol="BTC", CurrentPrice=Decimal("6000000"), IsActive=True
    )
    db.add(crypto)
    db.commit()
    db.refresh(crypto)
    return crypto.CryptoID


@pytest.fixture
def upi_method(db):
    method = PaymentMethod(Name="UPI", Kind="upi", UpiID="spebit@upi", IsActive=True)
    db.add(method)
    db.commit()
    db.refresh(method)
    return method.PaymentMethodID


@pytest.fixture
def buy(client):
    def _buy(headers, crypto_id, payment_method_id, rupee_amount="5000000", **overrides):
        files = {"screenshot": ("proof.png", PNG_BYTES, "image/png")}
        if "files" in overrides:
            files = overrides.pop("files")
        data = {
            "crypto_id": crypto_id,
            "rupee_amount": rupee_amount,
            "payment_method_id": payment_method_id,
        }
        for key, value in overrides.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        data = {key: value for key, value in data.items() if value is not None}
        return client.post(
            "/api/v1/users/transactions/buy", data=data, files=files, headers=headers
        )

    return _buy
