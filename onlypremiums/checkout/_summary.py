"""
Summary — subtotal, savings, coupon discount and total as a node graph.

    summary = await summarize(cart.items, context.applied_coupon)
    summary.total        # subtotal - discount
"""

from collections.abc import Sequence
from dataclasses import dataclass

from onlypremiums import graph as G
from onlypremiums.coupons import calculate_discount
from onlypremiums.domain import CartItem, Coupon
from onlypremiums.money import calculate_savings, calculate_total


@dataclass(frozen=True, slots=True)
class CheckoutInput:
    items: tuple[CartItem, ...]
    coupon: Coupon | None = None


@dataclass(frozen=True, slots=True)
class CheckoutSummary:
    subtotal: int
    savings: int
    discount: int
    total: int
    items_count: int


@G.node
class InputNode:
    def __init__(self, data: CheckoutInput) -> None:
        self.data = data

    @classmethod
    def __compose__(cls, checkout: CheckoutInput) -> "InputNode":
        return cls(checkout)


@G.node
class SubtotalNode:
    """Sum of price × quantity."""

    def __init__(self, value: int) -> None:
        self.value = value

    @classmethod
    def __compose__(cls, checkout: InputNode) -> "SubtotalNode":
        return cls(calculate_total(checkout.data.items))


@G.node
class SavingsNode:
    """List-price savings, before any coupon."""

    def __init__(self, value: int) -> None:
        self.value = value

    @classmethod
    def __compose__(cls, checkout: InputNode) -> "SavingsNode":
        return cls(calculate_savings(checkout.data.items))


@G.node
class CouponDiscountNode:
    def __init__(self, value: int) -> None:
        self.value = value

    @classmethod
    def __compose__(cls, checkout: InputNode, subtotal: SubtotalNode) -> "CouponDiscountNode":
        return cls(calculate_discount(subtotal.value, checkout.data.coupon))


@G.node
class TotalNode:
    def __init__(self, value: int) -> None:
        self.value = value

    @classmethod
    def __compose__(cls, subtotal: SubtotalNode, discount: CouponDiscountNode) -> "TotalNode":
        return cls(subtotal.value - discount.value)


@G.node
class CheckoutSummaryNode:
    def __init__(self, data: CheckoutSummary) -> None:
        self.data = data

    @classmethod
    def __compose__(
        cls,
        checkout: InputNode,
        subtotal: SubtotalNode,
        savings: SavingsNode,
        discount: CouponDiscountNode,
        total: TotalNode,
    ) -> "CheckoutSummaryNode":
        return cls(CheckoutSummary(
            subtotal=subtotal.value,
            savings=savings.value,
            discount=discount.value,
            total=total.value,
            items_count=len(checkout.data.items),
        ))


async def summarize(items: Sequence[CartItem], coupon: Coupon | None = None) -> CheckoutSummary:
    node = await G.compose(CheckoutSummaryNode, CheckoutInput(tuple(items), coupon))
    return node.data


__all__ = (
    "CheckoutInput",
    "CheckoutSummary",
    "SubtotalNode",
    "SavingsNode",
    "CouponDiscountNode",
    "TotalNode",
    "CheckoutSummaryNode",
    "summarize",
)
