"""Tests for the order book and its idempotency ledger."""

import re

from kungfu import Error, Ok

from conftest import make_plan
from onlypremiums.db import OrderTable
from onlypremiums.domain import CartItem, OrderStatus
from onlypremiums.errors import ErrorCode
from onlypremiums.orders import OrderBook, OrderDraft, generate_license_key


def draft_for(user_id, order_id=None, total=19900):
    return OrderDraft(
        order_id=order_id or OrderBook.new_order_id(),
        user_id=user_id,
        items=(CartItem(make_plan(), 1),),
        total_amount=total,
    )


class TestCreateOrder:
    """Tests for claiming checkout attempts."""

    async def test_same_key_conflicts(self, buyer):
        first = await buyer.orders.create_order(draft_for(buyer.user.id), "chk_one")
        second = await buyer.orders.create_order(draft_for(buyer.user.id), "chk_one")

        assert isinstance(first, Ok)
        assert isinstance(second, Error)
        assert second.error.code == ErrorCode.CONFLICT
        stored = (await buyer.orders.get_by_key("chk_one")).unwrap()
        assert stored.id == first.value.id

    async def test_items_round_trip(self, buyer):
        draft = draft_for(buyer.user.id)
        await buyer.orders.create_order(draft, "chk_items")

        stored = (await buyer.orders.get_by_key("chk_items")).unwrap()

        assert stored.items == draft.items
        assert stored.status is OrderStatus.PENDING
        assert stored.items_count == 1

    async def test_ledger_states(self, buyer):
        await buyer.orders.create_order(draft_for(buyer.user.id), "chk_ledger")

        assert (await buyer.orders.replay("chk_ledger")).unwrap().is_pending
        await buyer.orders.complete_attempt("chk_ledger", '{"ok": true}')

        record = (await buyer.orders.replay("chk_ledger")).unwrap()
        assert record.is_completed
        assert record.value == '{"ok": true}'
        assert (await buyer.orders.replay("chk_unknown")).unwrap() is None

    def test_ledger_columns(self):
        ledger = {c.name for c in OrderTable.__table__.columns if c.name.startswith("idempotency_")}
        assert ledger == {"idempotency_key", "idempotency_status", "idempotency_value", "idempotency_error"}

    async def test_order_ids_unique(self):
        ids = {OrderBook.new_order_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("ORD-") for i in ids)


class TestMarkStatus:
    async def test_sets_status_and_payment(self, buyer):
        order = (await buyer.orders.create_order(draft_for(buyer.user.id), "chk_pay")).unwrap()

        await buyer.orders.mark_status(order.id, OrderStatus.COMPLETED, "pay_123")

        stored = (await buyer.orders.get_by_key("chk_pay")).unwrap()
        assert stored.status is OrderStatus.COMPLETED
        assert stored.payment_id == "pay_123"
        assert stored.license_key is None

    async def test_sets_license_key(self, buyer):
        order = (await buyer.orders.create_order(draft_for(buyer.user.id), "chk_key")).unwrap()

        await buyer.orders.mark_status(order.id, OrderStatus.COMPLETED, "pay_123", "Q7ZK-0M3A-T1PX-9WEB")

        stored = (await buyer.orders.get_by_key("chk_key")).unwrap()
        assert stored.license_key == "Q7ZK-0M3A-T1PX-9WEB"

    async def test_missing_order(self, buyer):
        result = await buyer.orders.mark_status("ORD-0", OrderStatus.FAILED)

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.NOT_FOUND


class TestOrderHistory:
    """Tests for visibility rules."""

    async def test_buyer_sees_own_orders_newest_first(self, buyer, open_shop):
        other = await open_shop()
        (await other.register("bo@example.com", "secret2", "Bo")).unwrap()
        await other.orders.create_order(draft_for(other.user.id), "chk_bo")
        older = draft_for(buyer.user.id, "ORD-1")
        await buyer.orders.create_order(older, "chk_a1")
        await buyer.orders.create_order(draft_for(buyer.user.id, "ORD-2"), "chk_a2")

        orders = (await buyer.orders.refresh()).unwrap()

        assert [o.id for o in orders] == ["ORD-2", "ORD-1"]
        assert buyer.orders.get_user_orders(buyer.user.id) == orders

    async def test_admin_sees_everything(self, buyer, admin):
        await buyer.orders.create_order(draft_for(buyer.user.id), "chk_a1")

        await admin.orders.refresh()

        all_orders = admin.orders.get_all_orders().unwrap()
        assert [o.user_id for o in all_orders] == [buyer.user.id]

    async def test_buyer_cannot_list_all(self, buyer):
        result = buyer.orders.get_all_orders()

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.FORBIDDEN

    async def test_anonymous_has_no_orders(self, shop):
        assert (await shop.orders.refresh()).unwrap() == []


class TestLicenseKeys:
    def test_format(self):
        assert re.fullmatch(r"[A-Z0-9]{4}(-[A-Z0-9]{4}){3}", generate_license_key())

    def test_custom_shape(self):
        key = generate_license_key(segments=2, segment_length=6)
        assert re.fullmatch(r"[A-Z0-9]{6}-[A-Z0-9]{6}", key)
