"""
Checkout — summary graph and the order/payment saga.

    from onlypremiums.checkout import CheckoutOrchestrator, summarize

    summary = await summarize(cart.items, context.applied_coupon)
    receipt = await orchestrator.checkout_or_raise(context)
"""

from onlypremiums.checkout._flow import (
    CheckoutOrchestrator,
    CheckoutReceipt,
    PaidOrder,
    dump_receipt,
    load_receipt,
)
from onlypremiums.checkout._summary import (
    CheckoutInput,
    CheckoutSummary,
    CheckoutSummaryNode,
    CouponDiscountNode,
    SavingsNode,
    SubtotalNode,
    TotalNode,
    summarize,
)

__all__ = (
    "CheckoutOrchestrator",
    "CheckoutReceipt",
    "PaidOrder",
    "dump_receipt",
    "load_receipt",
    "CheckoutInput",
    "CheckoutSummary",
    "CheckoutSummaryNode",
    "CouponDiscountNode",
    "SavingsNode",
    "SubtotalNode",
    "TotalNode",
    "summarize",
)
