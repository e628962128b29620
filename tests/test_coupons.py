"""Tests for coupon validation, discounts, redemption and admin CRUD."""

from datetime import datetime, timedelta

import pytest
from kungfu import Error, Ok

from onlypremiums.context import CheckoutContext
from onlypremiums.coupons import (
    CouponDraft,
    CouponEvaluator,
    CouponPatch,
    calculate_discount,
    match_coupon,
)
from onlypremiums.db import CouponTable
from onlypremiums.domain import Coupon
from onlypremiums.errors import CouponRejection, ErrorCode

NOW = datetime(2025, 6, 1, 12, 0)


def coupon(code="SAVE40", pct=40, **overrides):
    fields = dict(
        id=f"coupon-{code.lower()}",
        code=code,
        discount_percentage=pct,
        valid_from=NOW - timedelta(days=1),
    )
    fields.update(overrides)
    return Coupon(**fields)


class TestMatchCoupon:
    """Tests for code lookup and validity checks."""

    def test_case_insensitive_match(self):
        result = match_coupon("  save40 ", [coupon()], NOW)
        assert isinstance(result, Ok)
        assert result.value.code == "SAVE40"

    def test_unknown_code(self):
        match match_coupon("NOPE", [coupon()], NOW):
            case Error(invalid):
                assert invalid.reason is CouponRejection.NOT_FOUND
                assert invalid.message == "Invalid coupon code"
            case Ok(_):
                pytest.fail("unknown code accepted")

    def test_expired(self):
        expired = coupon(valid_until=NOW - timedelta(seconds=1))
        match match_coupon("SAVE40", [expired], NOW):
            case Error(invalid):
                assert invalid.message == "Coupon has expired"
            case Ok(_):
                pytest.fail("expired coupon accepted")

    def test_not_yet_active(self):
        future = coupon(valid_from=NOW + timedelta(days=1))
        match match_coupon("SAVE40", [future], NOW):
            case Error(invalid):
                assert invalid.message == "Coupon is not yet active"
            case Ok(_):
                pytest.fail("future coupon accepted")

    def test_usage_limit(self):
        used_up = coupon(max_uses=5, current_uses=5)
        match match_coupon("SAVE40", [used_up], NOW):
            case Error(invalid):
                assert invalid.message == "Coupon usage limit reached"
            case Ok(_):
                pytest.fail("exhausted coupon accepted")

    @pytest.mark.parametrize("max_uses", [None, 0])
    def test_no_cap(self, max_uses):
        assert isinstance(match_coupon("SAVE40", [coupon(max_uses=max_uses, current_uses=999)], NOW), Ok)

    def test_boundaries_are_inclusive(self):
        edge = coupon(valid_from=NOW, valid_until=NOW)
        assert isinstance(match_coupon("SAVE40", [edge], NOW), Ok)


class TestDiscount:
    def test_forty_percent_of_19900(self):
        discount = calculate_discount(19900, coupon())
        assert discount == 7960
        assert 19900 - discount == 11940

    def test_no_coupon(self):
        assert calculate_discount(19900, None) == 0

    def test_monotonic_in_subtotal(self):
        c = coupon(pct=33)
        discounts = [calculate_discount(subtotal, c) for subtotal in range(0, 5000, 37)]
        assert discounts == sorted(discounts)
        assert all(0 <= d for d in discounts)

    def test_monotonic_in_percentage(self):
        for subtotal in (19900, 999):
            discounts = [calculate_discount(subtotal, coupon(pct=pct)) for pct in range(0, 101)]
            assert discounts == sorted(discounts)
            assert discounts[0] == 0
            assert discounts[-1] == subtotal

    def test_never_exceeds_subtotal(self):
        assert calculate_discount(999, coupon(pct=100)) == 999


class TestCouponEvaluator:
    """Tests for the evaluator against the store."""

    async def test_load_filters_unusable(self, store, add_coupon):
        await add_coupon("SAVE40", 40)
        await add_coupon("OLD", 10, valid_until=datetime(2000, 1, 1))
        await add_coupon("OFF", 10, active=False)
        await add_coupon("GONE", 10, max_uses=1, current_uses=1)
        evaluator = CouponEvaluator(store)

        result = await evaluator.load_active_coupons()

        assert isinstance(result, Ok)
        assert [c.code for c in evaluator.available] == ["SAVE40"]

    async def test_apply_sets_and_replaces(self, store, add_coupon):
        await add_coupon("SAVE40", 40)
        await add_coupon("WELCOME10", 10)
        evaluator = CouponEvaluator(store)
        await evaluator.load_active_coupons()
        context = CheckoutContext()

        first = evaluator.apply("save40", context)
        assert CouponEvaluator.applied_message(first.unwrap()) == "Coupon applied! 40% discount"
        evaluator.apply("WELCOME10", context)

        assert context.applied_coupon.code == "WELCOME10"
        assert evaluator.calculate_discount(10000, context) == 1000

    async def test_failed_apply_keeps_previous(self, store, add_coupon):
        await add_coupon("SAVE40", 40)
        evaluator = CouponEvaluator(store)
        await evaluator.load_active_coupons()
        context = CheckoutContext()
        evaluator.apply("SAVE40", context)

        result = evaluator.apply("BOGUS", context)

        assert isinstance(result, Error)
        assert context.applied_coupon.code == "SAVE40"

    async def test_remove(self, store, add_coupon):
        await add_coupon("SAVE40", 40)
        evaluator = CouponEvaluator(store)
        await evaluator.load_active_coupons()
        context = CheckoutContext()
        evaluator.apply("SAVE40", context)

        evaluator.remove(context)

        assert context.applied_coupon is None
        assert evaluator.calculate_discount(19900, context) == 0

    async def test_redeem_until_exhausted(self, store, add_coupon):
        await add_coupon("ONCE", 25, max_uses=1)
        evaluator = CouponEvaluator(store)

        assert isinstance(await evaluator.redeem("coupon-once"), Ok)
        second = await evaluator.redeem("coupon-once")

        assert isinstance(second, Error)
        assert second.error.code == ErrorCode.COUPON_EXHAUSTED
        row = await store.select_one(CouponTable, id="coupon-once")
        assert row.current_uses == 1

    async def test_redeem_rejects_expired(self, store, add_coupon):
        await add_coupon("OLD", 10, valid_until=datetime(2000, 1, 1))
        evaluator = CouponEvaluator(store)

        result = await evaluator.redeem("coupon-old")

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.COUPON_EXHAUSTED

    async def test_release_gives_back_a_use(self, store, add_coupon):
        await add_coupon("ONCE", 25, max_uses=1)
        evaluator = CouponEvaluator(store)
        await evaluator.redeem("coupon-once")

        await evaluator.release("coupon-once")
        await evaluator.release("coupon-once")

        row = await store.select_one(CouponTable, id="coupon-once")
        assert row.current_uses == 0


class TestCouponAdmin:
    """Tests for admin CRUD on coupons."""

    async def test_add_uppercases_code(self, admin):
        result = await admin.coupon_admin.add_coupon(CouponDraft(code="summer25", discount_percentage=25))

        created = result.unwrap()
        assert created.code == "SUMMER25"
        assert created.current_uses == 0
        assert [c.code for c in admin.coupon_admin.coupons] == ["SUMMER25"]

    async def test_duplicate_code_rejected(self, admin):
        await admin.coupon_admin.add_coupon(CouponDraft(code="DUP", discount_percentage=5))

        result = await admin.coupon_admin.add_coupon(CouponDraft(code="dup", discount_percentage=10))

        assert isinstance(result, Error)
        assert result.error.message == "Coupon code already exists"

    async def test_percentage_validated(self, admin):
        result = await admin.coupon_admin.add_coupon(CouponDraft(code="BIG", discount_percentage=150))

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.INVALID_INPUT

    async def test_update_toggle_delete(self, admin):
        created = (await admin.coupon_admin.add_coupon(CouponDraft(code="EDIT", discount_percentage=5))).unwrap()

        assert isinstance(await admin.coupon_admin.update_coupon(created.id, CouponPatch(discount_percentage=15)), Ok)
        assert admin.coupon_admin.coupon(created.id).discount_percentage == 15

        assert (await admin.coupon_admin.toggle_coupon_active(created.id)).unwrap() is False
        assert admin.coupon_admin.coupon(created.id).active is False

        assert isinstance(await admin.coupon_admin.delete_coupon(created.id), Ok)
        assert admin.coupon_admin.coupon(created.id) is None

    async def test_missing_coupon(self, admin):
        result = await admin.coupon_admin.delete_coupon("coupon-missing")

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.NOT_FOUND

    async def test_buyer_cannot_add(self, buyer):
        result = await buyer.coupon_admin.add_coupon(CouponDraft(code="FREE", discount_percentage=100))

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.FORBIDDEN
