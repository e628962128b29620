"""
Payments — drive a hosted payment widget and await its outcome.

The widget reports back through callbacks; `process_payment` turns them into
one awaited Result:

    request = PaymentRequest(
        amount=11940,
        currency="INR",
        order_id="ORD-1718000000000",
        customer_email="asha@example.com",
        customer_name="Asha",
        items_count=1,
    )
    match await process_payment("razorpay", gateway, request, key=settings.payment_key):
        case Ok(success):
            success.payment_id
        case Error(e) if e.code == ErrorCode.PAYMENT_CANCELLED:
            ...

`SimulatedGateway` stands in for the hosted widget in the demo console and tests.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from kungfu import Error, Ok, Result

from onlypremiums.errors import Errors, ShopError

logger = logging.getLogger(__name__)

MIN_AMOUNT = 100
SUPPORTED_GATEWAYS = frozenset({"razorpay"})
THEME_COLOR = "#6366f1"


# ═══════════════════════════════════════════════════════════════════════════════
# Widget contract
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class PaymentSuccess:
    payment_id: str
    gateway_order_id: str | None = None


@dataclass(frozen=True, slots=True)
class WidgetOptions:
    key: str
    amount: int
    currency: str
    name: str
    description: str
    order_id: str
    prefill: dict[str, str | None]
    notes: dict[str, str]
    on_success: Callable[[PaymentSuccess], None]
    on_dismiss: Callable[[], None]
    auto_capture: bool = True
    theme_color: str = THEME_COLOR


class PaymentWidget(Protocol):
    async def open(self) -> None: ...


class PaymentGateway(Protocol):
    def create(self, options: WidgetOptions) -> PaymentWidget: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class PaymentRequest:
    """`amount` is in paise."""
    amount: int
    currency: str
    order_id: str
    customer_email: str
    customer_name: str
    items_count: int
    customer_phone: str | None = None


def validate_request(request: PaymentRequest) -> ShopError | None:
    if request.amount < MIN_AMOUNT:
        return Errors.payment_failed("Invalid amount. Minimum amount is ₹1 (100 paise)")
    if not request.customer_email or not request.customer_name:
        return Errors.payment_failed("Customer details are required")
    return None


def build_options(
    request: PaymentRequest,
    *,
    key: str,
    store_name: str,
    on_success: Callable[[PaymentSuccess], None],
    on_dismiss: Callable[[], None],
) -> WidgetOptions:
    return WidgetOptions(
        key=key,
        amount=request.amount,
        currency=request.currency,
        name=store_name,
        description=f"Purchase of {request.items_count} item(s)",
        order_id=request.order_id,
        prefill={
            "name": request.customer_name,
            "email": request.customer_email,
            "contact": request.customer_phone,
        },
        notes={
            "order_id": request.order_id,
            "customer_email": request.customer_email,
            "items_count": str(request.items_count),
        },
        on_success=on_success,
        on_dismiss=on_dismiss,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Processing
# ═══════════════════════════════════════════════════════════════════════════════

async def process_payment(
    gateway_name: str,
    gateway: PaymentGateway,
    request: PaymentRequest,
    *,
    key: str,
    store_name: str = "OnlyPremiums",
) -> Result[PaymentSuccess, ShopError]:
    """
    Open the widget and wait for the buyer.

    Success resolves with the gateway's payment id, dismissal with
    PAYMENT_CANCELLED. Anything raised while creating or opening the widget
    is PAYMENT_FAILED.
    """
    if gateway_name not in SUPPORTED_GATEWAYS:
        return Error(Errors.payment_failed("Unsupported payment gateway"))
    if (invalid := validate_request(request)) is not None:
        logger.warning("payment for %s rejected: %s", request.order_id, invalid.message)
        return Error(invalid)

    outcome: asyncio.Future[PaymentSuccess | None] = asyncio.get_running_loop().create_future()

    def on_success(success: PaymentSuccess) -> None:
        if not outcome.done():
            outcome.set_result(success)

    def on_dismiss() -> None:
        if not outcome.done():
            outcome.set_result(None)

    options = build_options(request, key=key, store_name=store_name, on_success=on_success, on_dismiss=on_dismiss)
    try:
        await gateway.create(options).open()
    except Exception as e:
        logger.exception("payment widget failed for %s", request.order_id)
        error = Errors.payment_failed("Failed to initialize Razorpay")
        error.__cause__ = e
        return Error(error)

    success = await outcome
    if success is None:
        logger.info("payment for %s dismissed", request.order_id)
        return Error(Errors.payment_cancelled())
    logger.info("payment %s captured for %s", success.payment_id, request.order_id)
    return Ok(success)


# ═══════════════════════════════════════════════════════════════════════════════
# Simulated gateway
# ═══════════════════════════════════════════════════════════════════════════════

class SimulatedOutcome(StrEnum):
    SUCCEED = "succeed"
    DISMISS = "dismiss"
    FAIL = "fail"


@dataclass(slots=True)
class SimulatedWidget:
    options: WidgetOptions
    outcome: SimulatedOutcome
    delay: float = 0.0

    async def open(self) -> None:
        if self.outcome is SimulatedOutcome.FAIL:
            raise RuntimeError("Failed to load Razorpay script")
        if self.delay:
            await asyncio.sleep(self.delay)
        loop = asyncio.get_running_loop()
        match self.outcome:
            case SimulatedOutcome.SUCCEED:
                success = PaymentSuccess(
                    payment_id=f"pay_{secrets.token_hex(7)}",
                    gateway_order_id=f"order_{secrets.token_hex(7)}",
                )
                loop.call_soon(self.options.on_success, success)
            case SimulatedOutcome.DISMISS:
                loop.call_soon(self.options.on_dismiss)


@dataclass(slots=True)
class SimulatedGateway:
    """Resolves every widget with `outcome`. Records what it was asked to open."""
    outcome: SimulatedOutcome = SimulatedOutcome.SUCCEED
    delay: float = 0.0
    call_count: int = 0
    opened: list[WidgetOptions] = field(default_factory=list)

    @property
    def last_options(self) -> WidgetOptions | None:
        return self.opened[-1] if self.opened else None

    def create(self, options: WidgetOptions) -> SimulatedWidget:
        self.call_count += 1
        self.opened.append(options)
        return SimulatedWidget(options, self.outcome, self.delay)


__all__ = (
    "MIN_AMOUNT",
    "PaymentSuccess",
    "WidgetOptions",
    "PaymentWidget",
    "PaymentGateway",
    "PaymentRequest",
    "validate_request",
    "build_options",
    "process_payment",
    "SimulatedOutcome",
    "SimulatedWidget",
    "SimulatedGateway",
)
