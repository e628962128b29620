"""
Checkout context — the state one buyer carries into checkout.

Passed explicitly to the coupon evaluator and the checkout orchestrator; there
is no module-level "applied coupon".
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from onlypremiums.domain import Coupon


def new_attempt_key() -> str:
    return f"chk_{uuid.uuid4().hex}"


@dataclass(slots=True)
class CheckoutContext:
    """
    applied_coupon: at most one; applying another replaces it.
    attempt_key: idempotency key for the next order. Retrying with the same key
        never creates a second order; it is rotated after every finished attempt.
    """
    applied_coupon: Coupon | None = None
    attempt_key: str = field(default_factory=new_attempt_key)
    phone: str | None = None

    def clear_coupon(self) -> None:
        self.applied_coupon = None

    def rotate_key(self) -> str:
        self.attempt_key = new_attempt_key()
        return self.attempt_key


__all__ = ("CheckoutContext", "new_attempt_key")
