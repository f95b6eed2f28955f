from decimal import Decimal

import pytest

from spebit.controllers import referral_controller
from spebit.controllers.referral_controller import (
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_SKIPPED,
    apply_referral_reward,
    enqueue_reward_task,
    generate_referral_code,
    get_or_create_referral_code,
    link_referral,
    process_reward_task,
)
from spebit.controllers.wallet_controller import get_or_create_wallet
from spebit.models.referral import Referral, ReferralRewardTask
from spebit.models.user import User
from spebit.models.wallet import UserWallet


def wallet_earnings(db, user_id):
    db.expire_all()
    wallet = db.query(UserWallet).filter(UserWallet.UserID == user_id).first()
    return wallet.ReferralEarnings if wallet else None


@pytest.fixture
def referrer(client, make_user):
    user = make_user("referrer@spebit.io")
    # Reading the dashboard creates the wallet and the referral code
    dashboard = client.get("/api/v1/users/dashboard", headers=user["headers"]).json()["data"]
    user["referral_code"] = dashboard["referral_code"]
    return user


def test_referral_code_is_prefix_plus_user_id():
    assert generate_referral_code("3f2a9c1e-0000-4000-8000-000000000000") == "SPB3F2A9C1E"


def test_registering_with_a_code_links_the_referrer(client, make_user, referrer, db):
    referred = make_user("friend@spebit.io", referral_code=referrer["referral_code"].lower())

    referral = db.query(Referral).filter(Referral.ReferredID == referred["UserID"]).one()
    assert referral.ReferrerID == referrer["UserID"]
    assert referral.RewardedAt is None

    me = client.get("/api/v1/users/me", headers=referrer["headers"]).json()["data"]
    assert me["ReferralCount"] == 1

    listing = client.get("/api/v1/users/referrals", headers=referrer["headers"]).json()["data"]
    assert listing["total_referrals"] == 1
    assert listing["referral_code"] == referrer["referral_code"]


def test_unknown_referral_code_does_not_block_sign_up(client, db):
    response = client.post(
        "/api/v1/users/register",
        json={
            "Email": "lost@spebit.io",
            "Password": "password-123",
            "FullName": "Lost User",
            "ReferralCode": "SPBNOPE",
        },
    )

    assert response.status_code == 201
    assert response.json()["data"]["referred"] is False
    assert db.query(Referral).count() == 0


def test_first_purchase_rewards_the_referrer_once(make_user, referrer, bitcoin, upi_method, buy, db):
    referred = make_user("friend@spebit.io", referral_code=referrer["referral_code"])

    assert buy(referred["headers"], bitcoin, upi_method).status_code == 201
    assert wallet_earnings(db, referrer["UserID"]) == Decimal("166")

    referral = db.query(Referral).filter(Referral.ReferredID == referred["UserID"]).one()
    assert referral.RewardedAt is not None
    assert referral.Earnings == Decimal("166")
    task = db.query(ReferralRewardTask).one()
    assert task.Status == TASK_COMPLETED
    assert task.Attempts == 1

    # Second purchase queues nothing and pays nothing
    assert buy(referred["headers"], bitcoin, upi_method).status_code == 201
    assert wallet_earnings(db, referrer["UserID"]) == Decimal("166")
    assert db.query(ReferralRewardTask).count() == 1


def test_purchase_without_referral_is_skipped(make_user, referrer, bitcoin, upi_method, buy, db):
    loner = make_user("loner@spebit.io")

    assert buy(loner["headers"], bitcoin, upi_method).status_code == 201

    task = db.query(ReferralRewardTask).one()
    assert task.Status == TASK_SKIPPED
    assert wallet_earnings(db, referrer["UserID"]) == Decimal("0")


def test_reward_is_applied_at_most_once(make_user, referrer, db):
    referred = make_user("friend@spebit.io", referral_code=referrer["referral_code"])

    assert apply_referral_reward(referred["UserID"], db) is True
    db.commit()
    assert apply_referral_reward(referred["UserID"], db) is False
    db.commit()

    assert wallet_earnings(db, referrer["UserID"]) == Decimal("166")


def test_reward_skipped_when_referrer_has_no_wallet(make_user, db):
    referrer = make_user("referrer@spebit.io")
    code = get_or_create_referral_code(referrer["UserID"], db)
    referred = make_user("friend@spebit.io", referral_code=code)

    assert apply_referral_reward(referred["UserID"], db) is False
    db.commit()

    assert wallet_earnings(db, referrer["UserID"]) is None
    referral = db.query(Referral).filter(Referral.ReferredID == referred["UserID"]).one()
    assert referral.RewardedAt is None


def test_self_referral_is_not_linked(make_user, db):
    user = make_user("self@spebit.io")
    code = get_or_create_referral_code(user["UserID"], db)
    get_or_create_wallet(user["UserID"], db)
    account = db.query(User).filter(User.UserID == user["UserID"]).one()

    assert link_referral(account, code, db) is False
    assert apply_referral_reward(user["UserID"], db) is False
    assert db.query(Referral).count() == 0


def test_failed_task_is_recorded_and_can_be_retried(
    client, make_user, make_admin, referrer, db, monkeypatch
):
    referred = make_user("friend@spebit.io", referral_code=referrer["referral_code"])
    admin = make_admin()

    def broken(*args, **kwargs):
        raise RuntimeError("database went away")

    original = referral_controller.apply_referral_reward
    monkeypatch.setattr(referral_controller, "apply_referral_reward", broken)
    task = enqueue_reward_task(referred["UserID"], None, db)
    assert process_reward_task(task.TaskID, db) == TASK_FAILED
    db.refresh(task)
    assert task.LastError == "database went away"
    assert wallet_earnings(db, referrer["UserID"]) == Decimal("0")
    monkeypatch.setattr(referral_controller, "apply_referral_reward", original)

    listing = client.get(
        "/api/v1/admins/referral-rewards?task_status=failed", headers=admin["headers"]
    )
    assert listing.json()["total_items"] == 1

    response = client.post(
        f"/api/v1/admins/referral-rewards/{task.TaskID}/retry", headers=admin["headers"]
    )

    assert response.status_code == 200
    assert response.json()["data"]["Status"] == TASK_COMPLETED
    assert response.json()["data"]["Attempts"] == 2
    assert wallet_earnings(db, referrer["UserID"]) == Decimal("166")

    again = client.post(
        f"/api/v1/admins/referral-rewards/{task.TaskID}/retry", headers=admin["headers"]
    )
    assert again.status_code == 400
