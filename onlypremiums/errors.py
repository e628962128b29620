"""
Errors — one exception type with stable codes, plus coupon rejections.

Store failures are caught at component boundaries and come back as values:

    match await cart.add_item(plan):
        case Ok(_):
            ...
        case Error(e) if e.code == ErrorCode.UNAUTHENTICATED:
            show_login()
        case Error(e):
            alert(e.message)

Coupon validation never raises, it returns Error(CouponInvalid(...)).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# Codes
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """Stable string codes carried by every ShopError."""
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    REMOTE_OPERATION_FAILED = "REMOTE_OPERATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    COUPON_EXHAUSTED = "COUPON_EXHAUSTED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    CONFLICT = "CONFLICT"
    EMPTY_CART = "EMPTY_CART"


# ═══════════════════════════════════════════════════════════════════════════════
# ShopError
# ═══════════════════════════════════════════════════════════════════════════════

class ShopError(Exception):
    """Domain error. Returned inside Error(...) and raisable when needed."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"


class CheckoutError(ShopError):
    """Checkout could not complete. The caller shows `message` to the buyer."""

    @classmethod
    def wrap(cls, error: ShopError) -> CheckoutError:
        if isinstance(error, CheckoutError):
            return error
        wrapped = cls(error.code, error.message)
        wrapped.__cause__ = error
        return wrapped


class Errors:
    """Factory for common errors."""

    @staticmethod
    def unauthenticated(action: str) -> ShopError:
        return ShopError(ErrorCode.UNAUTHENTICATED, f"You must be signed in to {action}")

    @staticmethod
    def forbidden(action: str) -> ShopError:
        return ShopError(ErrorCode.FORBIDDEN, f"Only administrators can {action}")

    @staticmethod
    def invalid_credentials() -> ShopError:
        return ShopError(ErrorCode.INVALID_CREDENTIALS, "Invalid login credentials")

    @staticmethod
    def email_taken(email: str) -> ShopError:
        return ShopError(ErrorCode.EMAIL_TAKEN, f"User already registered: {email}")

    @staticmethod
    def remote(operation: str, cause: BaseException | None = None) -> ShopError:
        error = ShopError(ErrorCode.REMOTE_OPERATION_FAILED, f"Failed to {operation}")
        error.__cause__ = cause
        return error

    @staticmethod
    def not_found(entity: str, key: str) -> ShopError:
        return ShopError(ErrorCode.NOT_FOUND, f"{entity} not found: {key}")

    @staticmethod
    def invalid(message: str) -> ShopError:
        return ShopError(ErrorCode.INVALID_INPUT, message)

    @staticmethod
    def coupon_exhausted() -> ShopError:
        return ShopError(ErrorCode.COUPON_EXHAUSTED, CouponRejection.USAGE_LIMIT_REACHED.value)

    @staticmethod
    def payment_failed(message: str = "Payment failed") -> ShopError:
        return ShopError(ErrorCode.PAYMENT_FAILED, message)

    @staticmethod
    def payment_cancelled() -> ShopError:
        return ShopError(ErrorCode.PAYMENT_CANCELLED, "Payment cancelled by user")

    @staticmethod
    def conflict(message: str) -> ShopError:
        return ShopError(ErrorCode.CONFLICT, message)

    @staticmethod
    def empty_cart() -> ShopError:
        return ShopError(ErrorCode.EMPTY_CART, "Your cart is empty")


# ═══════════════════════════════════════════════════════════════════════════════
# Coupon rejections
# ═══════════════════════════════════════════════════════════════════════════════

class CouponRejection(Enum):
    """Why a code was refused. The value is the buyer-facing message."""
    NOT_FOUND = "Invalid coupon code"
    NOT_YET_ACTIVE = "Coupon is not yet active"
    EXPIRED = "Coupon has expired"
    USAGE_LIMIT_REACHED = "Coupon usage limit reached"


@dataclass(frozen=True, slots=True)
class CouponInvalid:
    reason: CouponRejection
    code: str

    @property
    def message(self) -> str:
        return self.reason.value


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorCode",
    "ShopError",
    "CheckoutError",
    "Errors",
    "CouponRejection",
    "CouponInvalid",
)
