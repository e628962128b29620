"""
Domain types — plans, products, cart lines, coupons, orders, users.

All amounts are integers in minor currency units (paise). Timestamps are
naive UTC, see `onlypremiums._time`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from onlypremiums.errors import CouponRejection


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════

class PlanDuration(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class ActivationMethod(StrEnum):
    COUPON_CODE = "coupon_code"
    LICENSE_KEY = "license_key"
    ACCOUNT_UPGRADE = "account_upgrade"
    MANUAL_SETUP = "manual_setup"


class OrderStatus(StrEnum):
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Role(StrEnum):
    USER = "user"
    ADMIN = "admin"


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Plan:
    """A purchasable subscription offering tied to a product and duration."""
    id: str
    product_id: str
    name: str
    description: str
    duration: PlanDuration
    price: int
    original_price: int
    discount_percentage: int
    features: tuple[str, ...] = ()
    activation_method: ActivationMethod = ActivationMethod.COUPON_CODE
    popular: bool = False
    active: bool = True
    image_url: str | None = None
    instructions_pdf_url: str | None = None
    instructions_text: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProductInfo:
    """Display record for a product. `color`, `text_color`, `bg_light` are style tokens."""
    name: str
    color: str
    text_color: str
    bg_light: str
    icon: str
    category: str


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str
    description: str
    icon: str
    color: str
    display_order: int


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CartItem:
    plan: Plan
    quantity: int

    @property
    def line_total(self) -> int:
        return self.plan.price * self.quantity

    @property
    def line_savings(self) -> int:
        return (self.plan.original_price - self.plan.price) * self.quantity


# ═══════════════════════════════════════════════════════════════════════════════
# Coupons
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Coupon:
    """
    Percentage discount code.

    Usable iff active, inside [valid_from, valid_until] and below max_uses.
    A max_uses of None or 0 means no cap.
    """
    id: str
    code: str
    discount_percentage: int
    valid_from: datetime
    valid_until: datetime | None = None
    max_uses: int | None = None
    current_uses: int = 0
    active: bool = True
    applicable_products: tuple[str, ...] = ()
    created_at: datetime | None = None

    @property
    def has_cap(self) -> bool:
        return bool(self.max_uses)

    def rejection_at(self, now: datetime) -> CouponRejection | None:
        """First reason the coupon cannot be used at `now`, checked in display order."""
        if now < self.valid_from:
            return CouponRejection.NOT_YET_ACTIVE
        if self.valid_until is not None and now > self.valid_until:
            return CouponRejection.EXPIRED
        if self.has_cap and self.current_uses >= (self.max_uses or 0):
            return CouponRejection.USAGE_LIMIT_REACHED
        return None

    def is_usable(self, now: datetime) -> bool:
        return self.active and self.rejection_at(now) is None


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Order:
    id: str
    user_id: str
    items: tuple[CartItem, ...]
    total_amount: int
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    payment_id: str | None = None
    coupon_id: str | None = None
    license_key: str | None = None

    @property
    def items_count(self) -> int:
        return len(self.items)


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    name: str
    role: Role = Role.USER
    created_at: datetime | None = None
    phone: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


# ═══════════════════════════════════════════════════════════════════════════════
# Claiming
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class ClaimingInstruction:
    """How a buyer redeems a purchased plan."""
    id: str
    plan_id: str
    method_title: str
    instructions: str
    contact_info: str | None = None
    estimated_time: str | None = None
    link_url: str | None = None


@dataclass(frozen=True, slots=True)
class PurchasedPlan:
    plan_id: str
    plan_name: str
    product_id: str
    order_id: str
    purchased_at: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "PlanDuration",
    "ActivationMethod",
    "OrderStatus",
    "Role",
    "Plan",
    "ProductInfo",
    "Category",
    "CartItem",
    "Coupon",
    "Order",
    "User",
    "ClaimingInstruction",
    "PurchasedPlan",
)
