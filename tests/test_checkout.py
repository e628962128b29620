"""Tests for checkout: order status policy, coupon reservation, idempotent retries."""

import asyncio
import re

import pytest
from kungfu import Error, Ok

from onlypremiums.db import CouponTable, OrderTable
from onlypremiums.domain import OrderStatus
from onlypremiums.errors import CheckoutError, ErrorCode, Errors
from onlypremiums.orders import OrderDraft
from onlypremiums.payments import SimulatedOutcome
from onlypremiums.settings import OrderStatusPolicy


async def fill_cart(shop, coupon_code=None):
    await shop.cart.add_item(shop.catalog.plan("figma-yearly"))
    if coupon_code is not None:
        await shop.coupons.load_active_coupons()
        shop.apply_coupon(coupon_code).unwrap()


async def only_order(store, user_id):
    (row,) = await store.select(OrderTable, where={"user_id": user_id})
    return row


class TestGatedCheckout:
    """Orders become completed only once payment is confirmed."""

    async def test_success(self, buyer, store, gateway, add_coupon):
        await add_coupon("SAVE40", 40)
        await fill_cart(buyer, "SAVE40")
        first_key = buyer.context.attempt_key

        result = await buyer.place_order()

        receipt = result.unwrap()
        assert receipt.total_amount == 11940
        assert receipt.items_count == 1
        assert receipt.payment_id.startswith("pay_")
        assert not receipt.replayed
        assert gateway.last_options.amount == 11940

        row = await only_order(store, buyer.user.id)
        assert row.id == receipt.order_id
        assert row.status == OrderStatus.COMPLETED
        assert row.payment_id == receipt.payment_id
        assert row.coupon_id == "coupon-save40"
        assert row.license_key == receipt.license_key
        assert re.fullmatch(r"[A-Z0-9]{4}(-[A-Z0-9]{4}){3}", receipt.license_key)
        assert receipt.confirmed
        assert (await store.select_one(CouponTable, id="coupon-save40")).current_uses == 1

        assert buyer.cart.items == []
        assert buyer.context.applied_coupon is None
        assert buyer.context.attempt_key != first_key
        assert [o.id for o in buyer.orders.orders] == [receipt.order_id]

    async def test_dismissed_payment(self, buyer, store, gateway, add_coupon):
        await add_coupon("SAVE40", 40)
        await fill_cart(buyer, "SAVE40")
        gateway.outcome = SimulatedOutcome.DISMISS
        first_key = buyer.context.attempt_key

        result = await buyer.place_order()

        assert isinstance(result, Error)
        assert isinstance(result.error, CheckoutError)
        assert result.error.code == ErrorCode.PAYMENT_CANCELLED

        row = await only_order(store, buyer.user.id)
        assert row.status == OrderStatus.FAILED
        assert row.payment_id is None
        assert row.idempotency_status == "failed"
        assert (await store.select_one(CouponTable, id="coupon-save40")).current_uses == 0

        # the buyer can retry as-is
        assert len(buyer.cart.items) == 1
        assert buyer.context.applied_coupon.code == "SAVE40"
        assert buyer.context.attempt_key != first_key

    async def test_retry_after_dismissal(self, buyer, store, gateway):
        await fill_cart(buyer)
        gateway.outcome = SimulatedOutcome.DISMISS
        await buyer.place_order()

        gateway.outcome = SimulatedOutcome.SUCCEED
        result = await buyer.place_order()

        assert isinstance(result, Ok)
        statuses = sorted(row.status for row in await store.select(OrderTable))
        assert statuses == [OrderStatus.COMPLETED, OrderStatus.FAILED]

    async def test_widget_failure(self, buyer, store, gateway):
        await fill_cart(buyer)
        gateway.outcome = SimulatedOutcome.FAIL

        result = await buyer.place_order()

        assert result.error.code == ErrorCode.PAYMENT_FAILED
        assert (await only_order(store, buyer.user.id)).status == OrderStatus.FAILED

    async def test_phone_passed_to_widget(self, buyer, gateway):
        await fill_cart(buyer)
        buyer.context.phone = "9876543210"

        await buyer.place_order()

        assert gateway.last_options.prefill["contact"] == "9876543210"


async def store_offline(*_args, **_kwargs):
    return Error(Errors.remote("write order", RuntimeError("store offline")))


class TestAfterPaymentCaptured:
    """Once the widget reports a payment, nothing is rolled back."""

    async def test_attempt_not_recorded(self, buyer, store, gateway, add_coupon, monkeypatch):
        await add_coupon("SAVE40", 40)
        await fill_cart(buyer, "SAVE40")
        monkeypatch.setattr(buyer.orders, "complete_attempt", store_offline)

        receipt = (await buyer.place_order()).unwrap()

        assert receipt.confirmed
        assert gateway.call_count == 1
        row = await only_order(store, buyer.user.id)
        assert row.status == OrderStatus.COMPLETED
        assert row.payment_id == receipt.payment_id
        assert row.license_key == receipt.license_key
        assert (await store.select_one(CouponTable, id="coupon-save40")).current_uses == 1
        assert buyer.cart.items == []

    async def test_order_not_confirmed(self, buyer, store, gateway, add_coupon, monkeypatch):
        await add_coupon("SAVE40", 40)
        await fill_cart(buyer, "SAVE40")
        mark_status = buyer.orders.mark_status

        async def refuse_completion(order_id, status, payment_id=None, license_key=None):
            if status is OrderStatus.COMPLETED:
                return await store_offline()
            return await mark_status(order_id, status, payment_id, license_key)

        monkeypatch.setattr(buyer.orders, "mark_status", refuse_completion)

        receipt = (await buyer.place_order()).unwrap()

        assert not receipt.confirmed
        assert receipt.license_key is None
        assert gateway.call_count == 1
        row = await only_order(store, buyer.user.id)
        assert row.status == OrderStatus.PAYMENT_PENDING
        assert row.payment_id == receipt.payment_id
        assert row.idempotency_status == "completed"
        assert (await store.select_one(CouponTable, id="coupon-save40")).current_uses == 1
        assert buyer.cart.items == []
        assert buyer.context.applied_coupon is None


class TestLegacyCheckout:
    async def test_dismissal_leaves_completed_order(self, open_shop, store, gateway):
        shop = await open_shop(OrderStatusPolicy.LEGACY)
        (await shop.register("asha@example.com", "secret1", "Asha")).unwrap()
        await fill_cart(shop)
        gateway.outcome = SimulatedOutcome.DISMISS

        result = await shop.place_order()

        assert result.error.code == ErrorCode.PAYMENT_CANCELLED
        row = await only_order(store, shop.user.id)
        assert row.status == OrderStatus.COMPLETED
        assert row.payment_id is None

    async def test_success(self, open_shop, store):
        shop = await open_shop(OrderStatusPolicy.LEGACY)
        (await shop.register("asha@example.com", "secret1", "Asha")).unwrap()
        await fill_cart(shop)

        receipt = (await shop.place_order()).unwrap()

        row = await only_order(store, shop.user.id)
        assert row.status == OrderStatus.COMPLETED
        assert row.payment_id == receipt.payment_id


class TestCouponReservation:
    """The last use of a capped coupon goes to exactly one buyer."""

    async def test_exhausted_between_apply_and_checkout(self, buyer, store, add_coupon):
        await add_coupon("LASTONE", 25, max_uses=1)
        await fill_cart(buyer, "LASTONE")
        await store.update(CouponTable, {"current_uses": 1}, where={"id": "coupon-lastone"})

        result = await buyer.place_order()

        assert result.error.code == ErrorCode.COUPON_EXHAUSTED
        assert result.error.message == "Coupon usage limit reached"
        assert (await only_order(store, buyer.user.id)).status == OrderStatus.FAILED
        assert (await store.select_one(CouponTable, id="coupon-lastone")).current_uses == 1

    async def test_concurrent_buyers(self, buyer, open_shop, store, gateway, add_coupon):
        other = await open_shop()
        (await other.register("bo@example.com", "secret2", "Bo")).unwrap()
        await add_coupon("LASTONE", 25, max_uses=1)
        await fill_cart(buyer, "LASTONE")
        await fill_cart(other, "LASTONE")
        gateway.delay = 0.01

        results = await asyncio.gather(buyer.place_order(), other.place_order())

        succeeded = [r for r in results if isinstance(r, Ok)]
        failed = [r for r in results if isinstance(r, Error)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert failed[0].error.code == ErrorCode.COUPON_EXHAUSTED
        assert succeeded[0].value.total_amount == 14925
        assert (await store.select_one(CouponTable, id="coupon-lastone")).current_uses == 1


class TestIdempotentCheckout:
    """Retrying with the same attempt key never creates a second order."""

    async def test_replay_completed_attempt(self, buyer, store, gateway):
        await fill_cart(buyer)
        key = buyer.context.attempt_key
        receipt = (await buyer.place_order()).unwrap()

        buyer.context.attempt_key = key
        replayed = (await buyer.place_order()).unwrap()

        assert replayed.replayed
        assert replayed.order_id == receipt.order_id
        assert replayed.payment_id == receipt.payment_id
        assert replayed.license_key == receipt.license_key
        assert gateway.call_count == 1
        assert len(await store.select(OrderTable)) == 1

    async def test_attempt_in_flight(self, buyer, store):
        await fill_cart(buyer)
        key = buyer.context.attempt_key
        draft = OrderDraft("ORD-1", buyer.user.id, tuple(buyer.cart.items), 19900)
        (await buyer.orders.create_order(draft, key)).unwrap()

        result = await buyer.place_order()

        assert result.error.code == ErrorCode.CONFLICT
        assert result.error.message == "This checkout is already being processed"
        assert buyer.context.attempt_key == key
        assert len(await store.select(OrderTable)) == 1

    async def test_failed_attempt_not_replayed(self, buyer, gateway):
        await fill_cart(buyer)
        key = buyer.context.attempt_key
        gateway.outcome = SimulatedOutcome.DISMISS
        await buyer.place_order()

        buyer.context.attempt_key = key
        result = await buyer.place_order()

        assert result.error.code == ErrorCode.CONFLICT
        assert result.error.message == "This checkout attempt already failed"


class TestCheckoutPreconditions:
    async def test_empty_cart(self, buyer, gateway):
        result = await buyer.place_order()

        assert result.error.code == ErrorCode.EMPTY_CART
        assert result.error.message == "Your cart is empty"
        assert gateway.call_count == 0

    async def test_signed_out(self, shop):
        result = await shop.place_order()

        assert result.error.code == ErrorCode.UNAUTHENTICATED

    async def test_checkout_or_raise(self, buyer):
        with pytest.raises(CheckoutError) as excinfo:
            await buyer.checkout.checkout_or_raise(buyer.context)

        assert excinfo.value.code == ErrorCode.EMPTY_CART

    async def test_summary(self, buyer, add_coupon):
        await add_coupon("SAVE40", 40)
        await fill_cart(buyer, "SAVE40")

        summary = await buyer.checkout.summary(buyer.context)

        assert (summary.subtotal, summary.discount, summary.total) == (19900, 7960, 11940)
