"""
Checkout flow — order, coupon reservation, payment and confirmation as a saga.

    orchestrator = CheckoutOrchestrator(settings, session, cart, coupons, orders, gateway)

    match await orchestrator.checkout(context):
        case Ok(receipt):
            show_success(receipt.order_id)
        case Error(e):
            alert(e.message)

Steps, each undone in reverse when a later one fails:

    1. create order      (claims context.attempt_key)    undo: mark failed (gated)
    2. reserve coupon    (conditional usage increment)   undo: release the use
    3. pay               (payment widget)

Once the widget reports a payment the money has moved, so confirmation
(completed + payment id + license key, receipt stored under the key) runs
after the saga and is never rolled back. Writes that keep failing are logged
and the order stays `payment_pending` with its payment id.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from kungfu import Error, LazyCoroResult, Ok, Result
from pydantic import TypeAdapter

from onlypremiums import saga as S
from onlypremiums.checkout._summary import CheckoutSummary, summarize
from onlypremiums.cart import CartAggregate
from onlypremiums.context import CheckoutContext
from onlypremiums.coupons import CouponEvaluator
from onlypremiums.domain import Order, OrderStatus, User
from onlypremiums.errors import CheckoutError, ErrorCode, Errors, ShopError
from onlypremiums.orders import OrderBook, OrderDraft, generate_license_key
from onlypremiums.payments import PaymentGateway, PaymentRequest, PaymentSuccess, process_payment
from onlypremiums.session import SessionManager
from onlypremiums.settings import OrderStatusPolicy, Settings

logger = logging.getLogger(__name__)

CONFIRM_ATTEMPTS = 3


# ═══════════════════════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CheckoutReceipt:
    order_id: str
    payment_id: str
    total_amount: int
    items_count: int
    license_key: str | None = None
    confirmed: bool = True
    replayed: bool = False


_RECEIPT = TypeAdapter(CheckoutReceipt)


def dump_receipt(receipt: CheckoutReceipt) -> str:
    return _RECEIPT.dump_json(receipt).decode()


def load_receipt(raw: str) -> CheckoutReceipt:
    return _RECEIPT.validate_json(raw)


@dataclass(frozen=True, slots=True)
class PaidOrder:
    order: Order
    payment: PaymentSuccess


# ═══════════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════════════

class CheckoutOrchestrator:
    def __init__(
        self,
        settings: Settings,
        session: SessionManager,
        cart: CartAggregate,
        coupons: CouponEvaluator,
        orders: OrderBook,
        gateway: PaymentGateway,
        gateway_name: str = "razorpay",
    ) -> None:
        self._settings = settings
        self._session = session
        self._cart = cart
        self._coupons = coupons
        self._orders = orders
        self._gateway = gateway
        self._gateway_name = gateway_name

    @property
    def gated(self) -> bool:
        return self._settings.order_policy is OrderStatusPolicy.GATED

    async def summary(self, context: CheckoutContext) -> CheckoutSummary:
        return await summarize(self._cart.items, context.applied_coupon)

    async def checkout(self, context: CheckoutContext) -> Result[CheckoutReceipt, CheckoutError]:
        match self._session.require_user("checkout"):
            case Error(e):
                return Error(CheckoutError.wrap(e))
            case Ok(user):
                pass

        key = context.attempt_key
        match await self._replay(key):
            case Ok(None):
                pass
            case Ok(receipt):
                logger.info("checkout attempt %s replayed: order %s", key, receipt.order_id)
                return Ok(receipt)
            case Error(e):
                return Error(CheckoutError.wrap(e))

        items = tuple(self._cart.items)
        if not items:
            return Error(CheckoutError.wrap(Errors.empty_cart()))

        summary = await summarize(items, context.applied_coupon)
        coupon = context.applied_coupon
        draft = OrderDraft(
            order_id=self._orders.new_order_id(),
            user_id=user.id,
            items=items,
            total_amount=summary.total,
            status=OrderStatus.PENDING if self.gated else OrderStatus.COMPLETED,
            coupon_id=coupon.id if coupon is not None else None,
        )
        logger.info(
            "checkout %s for %s: %d line(s), subtotal %d, discount %d, total %d",
            draft.order_id, user.id, summary.items_count, summary.subtotal, summary.discount, summary.total,
        )

        flow = (
            self._create_order(draft, key)
            .then(self._reserve_coupon)
            .then(lambda order: self._pay(order, user, context))
        )
        match await S.run(flow):
            case Ok(done):
                receipt = await self._confirm(done.value, key)
                return Ok(await self._finalize(receipt, context))
            case Error(failure):
                return Error(await self._fail(failure, key, context))

    async def checkout_or_raise(self, context: CheckoutContext) -> CheckoutReceipt:
        match await self.checkout(context):
            case Ok(receipt):
                return receipt
            case Error(e):
                raise e

    # ─────────────────────────────────────────────────────────────────────────
    # Steps
    # ─────────────────────────────────────────────────────────────────────────

    def _create_order(self, draft: OrderDraft, key: str) -> S.SagaStep[Order, ShopError]:
        async def undo(order: Order) -> None:
            if not self.gated:
                logger.warning("order %s stays completed although checkout failed", order.id)
                return
            match await self._orders.mark_status(order.id, OrderStatus.FAILED):
                case Error(e):
                    raise e

        return S.step(
            LazyCoroResult(lambda: self._orders.create_order(draft, key)),
            compensate=undo,
            name="create order",
        )

    def _reserve_coupon(self, order: Order) -> S.SagaStep[Order, ShopError]:
        async def reserve() -> Result[Order, ShopError]:
            if order.coupon_id is None:
                return Ok(order)
            match await self._coupons.redeem(order.coupon_id):
                case Ok(_):
                    return Ok(order)
                case Error(e):
                    return Error(e)

        async def release(reserved: Order) -> None:
            if reserved.coupon_id is not None:
                await self._coupons.release(reserved.coupon_id)

        return S.step(LazyCoroResult(reserve), compensate=release, name="reserve coupon")

    def _pay(self, order: Order, user: User, context: CheckoutContext) -> S.SagaStep[PaidOrder, ShopError]:
        async def pay() -> Result[PaidOrder, ShopError]:
            if self.gated:
                match await self._orders.mark_status(order.id, OrderStatus.PAYMENT_PENDING):
                    case Error(e):
                        return Error(e)
            request = PaymentRequest(
                amount=order.total_amount,
                currency=self._settings.currency,
                order_id=order.id,
                customer_email=user.email,
                customer_name=user.name,
                items_count=order.items_count,
                customer_phone=context.phone or user.phone,
            )
            paid = await process_payment(
                self._gateway_name,
                self._gateway,
                request,
                key=self._settings.payment_key,
                store_name=self._settings.store_name,
            )
            match paid:
                case Ok(success):
                    return Ok(PaidOrder(order, success))
                case Error(e):
                    return Error(e)

        return S.step(LazyCoroResult(pay), name="pay")

    # ─────────────────────────────────────────────────────────────────────────
    # After payment
    # ─────────────────────────────────────────────────────────────────────────

    async def _confirm(self, paid: PaidOrder, key: str) -> CheckoutReceipt:
        order = paid.order
        payment_id = paid.payment.payment_id
        license_key = generate_license_key()

        confirmed = await self._persist(
            f"confirm order {order.id}",
            lambda: self._orders.mark_status(order.id, OrderStatus.COMPLETED, payment_id, license_key),
        )
        if not confirmed:
            held = OrderStatus.PAYMENT_PENDING if self.gated else OrderStatus.COMPLETED
            await self._persist(
                f"attach payment {payment_id} to order {order.id}",
                lambda: self._orders.mark_status(order.id, held, payment_id),
            )

        receipt = CheckoutReceipt(
            order_id=order.id,
            payment_id=payment_id,
            total_amount=order.total_amount,
            items_count=order.items_count,
            license_key=license_key if confirmed else None,
            confirmed=confirmed,
        )
        await self._persist(
            f"record checkout attempt {key}",
            lambda: self._orders.complete_attempt(key, dump_receipt(receipt)),
        )
        return receipt

    async def _persist(self, what: str, write: Callable[[], Awaitable[Result[None, ShopError]]]) -> bool:
        for attempt in range(1, CONFIRM_ATTEMPTS + 1):
            match await write():
                case Ok(_):
                    return True
                case Error(e):
                    logger.warning("%s failed (attempt %d/%d): %s", what, attempt, CONFIRM_ATTEMPTS, e.message)
        logger.error("could not %s after payment; left for reconciliation", what)
        return False

    # ─────────────────────────────────────────────────────────────────────────
    # Outcomes
    # ─────────────────────────────────────────────────────────────────────────

    async def _replay(self, key: str) -> Result[CheckoutReceipt | None, ShopError]:
        match await self._orders.replay(key):
            case Ok(None):
                return Ok(None)
            case Ok(record) if record.is_completed and record.value:
                return Ok(replace(load_receipt(record.value), replayed=True))
            case Ok(record) if record.is_pending:
                return Error(Errors.conflict("This checkout is already being processed"))
            case Ok(_):
                return Error(Errors.conflict("This checkout attempt already failed"))
            case Error(e):
                return Error(e)

    async def _finalize(self, receipt: CheckoutReceipt, context: CheckoutContext) -> CheckoutReceipt:
        match await self._cart.clear():
            case Error(e):
                # the order is paid; a stale cart is only cosmetic
                logger.warning("cart not cleared after order %s: %s", receipt.order_id, e.message)
        context.clear_coupon()
        context.rotate_key()
        logger.info("order %s completed with payment %s", receipt.order_id, receipt.payment_id)
        return receipt

    async def _fail(self, failure: S.SagaError[ShopError], key: str, context: CheckoutContext) -> CheckoutError:
        error = failure.error
        logger.warning(
            "checkout failed at step %d (%s): %s; %d compensator(s) run, %d failed",
            failure.step_failed, failure.failed_step_name, error.message,
            failure.compensators_run, failure.compensators_failed,
        )
        # the attempt is ours only once the order step went through
        if failure.step_failed > 1:
            match await self._orders.fail_attempt(key, error.message):
                case Error(e):
                    logger.error("could not mark attempt %s failed: %s", key, e.message)
        if error.code != ErrorCode.CONFLICT:
            context.rotate_key()
        return CheckoutError.wrap(error)


__all__ = (
    "CheckoutReceipt",
    "PaidOrder",
    "dump_receipt",
    "load_receipt",
    "CheckoutOrchestrator",
)
