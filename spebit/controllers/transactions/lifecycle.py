# spebit/controllers/transactions/lifecycle.py
"""
Buy order status lifecycle.

    draft -> payment_uploaded -> blockchain_submitted -> approved | rejected

``draft`` only exists on the client. ``approved`` and ``rejected`` are
terminal. The owner may only attach blockchain details; only an admin may
decide, and may do so from either non-terminal persisted state.
"""
from decimal import ROUND_HALF_UP, Decimal

from spebit.core.exceptions import InvalidTransitionError

DRAFT = "draft"
PAYMENT_UPLOADED = "payment_uploaded"
BLOCKCHAIN_SUBMITTED = "blockchain_submitted"
APPROVED = "approved"
REJECTED = "rejected"

STATUSES = (DRAFT, PAYMENT_UPLOADED, BLOCKCHAIN_SUBMITTED, APPROVED, REJECTED)
PENDING_STATUSES = (PAYMENT_UPLOADED, BLOCKCHAIN_SUBMITTED)
TERMINAL_STATUSES = (APPROVED, REJECTED)

OWNER = "owner"
ADMIN = "admin"

TRANSITIONS = {
    OWNER: {
        DRAFT: {PAYMENT_UPLOADED},
        PAYMENT_UPLOADED: {BLOCKCHAIN_SUBMITTED},
    },
    ADMIN: {
        PAYMENT_UPLOADED: {APPROVED, REJECTED},
        BLOCKCHAIN_SUBMITTED: {APPROVED, REJECTED},
    },
}


def can_transition(current: str, target: str, actor: str) -> bool:
    return target in TRANSITIONS.get(actor, {}).get(current, set())


def ensure_transition(current: str, target: str, actor: str) -> None:
    if not can_transition(current, target, actor):
        raise InvalidTransitionError(current, target)


def allowed_sources(target: str, actor: str) -> list:
    """States the actor may move a transaction out of to reach ``target``."""
    return [
        source
        for source, targets in TRANSITIONS.get(actor, {}).items()
        if target in targets
    ]


def amount_precision(price: Decimal) -> int:
    return 8 if Decimal(price) < 1 else 6


def compute_crypto_amount(rupee_amount: Decimal, price: Decimal) -> Decimal:
    """Crypto units bought for ``rupee_amount`` at ``price`` rupees per unit."""
    rupee_amount = Decimal(rupee_amount)
    price = Decimal(price)
    if rupee_amount <= 0 or price <= 0:
        raise ValueError("rupee amount and price must be positive")
    places = Decimal(1).scaleb(-amount_precision(price))
    return (rupee_amount / price).quantize(places, rounding=ROUND_HALF_UP)
