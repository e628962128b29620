"""
Coupons — validation, discount math, atomic redemption, and admin CRUD.

    evaluator = CouponEvaluator(store)
    await evaluator.load_active_coupons()

    match evaluator.apply("save40", context):
        case Ok(coupon):
            notify(CouponEvaluator.applied_message(coupon))
        case Error(invalid):
            notify(invalid.message)          # "Coupon has expired", ...

    discount = evaluator.calculate_discount(cart.total, context)

Usage is only counted through `redeem`, a single conditional UPDATE, so two
buyers racing for the last use cannot both get it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from combinators import lift as L
from kungfu import Error, Ok, Result
from sqlalchemy import or_, update

from onlypremiums._admin import admin_write, expect_row
from onlypremiums._time import Clock, unique_epoch_ms, utcnow
from onlypremiums.catalog import to_columns
from onlypremiums.context import CheckoutContext
from onlypremiums.db import CouponTable
from onlypremiums.domain import Coupon
from onlypremiums.errors import CouponInvalid, CouponRejection, Errors, ShopError
from onlypremiums.money import apply_percentage
from onlypremiums.session import SessionManager
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Pure functions
# ═══════════════════════════════════════════════════════════════════════════════

def normalize_code(code: str) -> str:
    return code.strip().upper()


def coupon_from_row(row: CouponTable) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        discount_percentage=row.discount_percentage,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        max_uses=row.max_uses,
        current_uses=row.current_uses or 0,
        active=bool(row.active),
        applicable_products=tuple(row.applicable_products or ()),
        created_at=row.created_at,
    )


def match_coupon(code: str, coupons: Iterable[Coupon], now: datetime) -> Result[Coupon, CouponInvalid]:
    """Case-insensitive exact match, then the usability checks in display order."""
    wanted = normalize_code(code)
    coupon = next((c for c in coupons if normalize_code(c.code) == wanted), None)
    if coupon is None:
        return Error(CouponInvalid(CouponRejection.NOT_FOUND, code))
    rejection = coupon.rejection_at(now)
    if rejection is not None:
        return Error(CouponInvalid(rejection, code))
    return Ok(coupon)


def calculate_discount(subtotal: int, coupon: Coupon | None) -> int:
    """round_half_up(subtotal * pct / 100), or 0 without a coupon."""
    if coupon is None:
        return 0
    return apply_percentage(subtotal, coupon.discount_percentage)


# ═══════════════════════════════════════════════════════════════════════════════
# Evaluator
# ═══════════════════════════════════════════════════════════════════════════════

class CouponEvaluator:
    def __init__(self, store: RemoteStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock
        self.available: list[Coupon] = []

    async def load_active_coupons(self) -> Result[list[Coupon], ShopError]:
        """Active rows, newest first, filtered to the ones usable right now."""
        result = await L.catching_async(
            lambda: self._store.select(CouponTable, where={"active": True}, order_by="created_at", descending=True),
            on_error=lambda e: Errors.remote("load coupons", e),
        )
        match result:
            case Ok(rows):
                now = self._clock()
                self.available = [c for c in map(coupon_from_row, rows) if c.is_usable(now)]
                return Ok(self.available)
            case Error(e):
                logger.error("coupon load failed: %s", e.__cause__)
                self.available = []
                return Error(e)

    def apply(self, code: str, context: CheckoutContext) -> Result[Coupon, CouponInvalid]:
        """Make `code` the context's only applied coupon. Failures are values, never raised."""
        result = match_coupon(code, self.available, self._clock())
        match result:
            case Ok(coupon):
                context.applied_coupon = coupon
                logger.info("coupon %s applied (%s%%)", coupon.code, coupon.discount_percentage)
            case Error(invalid):
                logger.info("coupon %r rejected: %s", code, invalid.message)
        return result

    @staticmethod
    def applied_message(coupon: Coupon) -> str:
        return f"Coupon applied! {coupon.discount_percentage}% discount"

    @staticmethod
    def remove(context: CheckoutContext) -> None:
        context.clear_coupon()

    @staticmethod
    def calculate_discount(subtotal: int, context: CheckoutContext) -> int:
        return calculate_discount(subtotal, context.applied_coupon)

    async def redeem(self, coupon_id: str) -> Result[None, ShopError]:
        """Count one use, only if the coupon is still usable. Atomic in the store."""
        now = self._clock()
        stmt = (
            update(CouponTable)
            .where(
                CouponTable.id == coupon_id,
                CouponTable.active.is_(True),
                CouponTable.valid_from <= now,
                or_(CouponTable.valid_until.is_(None), CouponTable.valid_until >= now),
                or_(
                    CouponTable.max_uses.is_(None),
                    CouponTable.max_uses == 0,
                    CouponTable.current_uses < CouponTable.max_uses,
                ),
            )
            .values(current_uses=CouponTable.current_uses + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await L.catching_async(
            lambda: self._store.execute(stmt),
            on_error=lambda e: Errors.remote("record coupon usage", e),
        )
        match result:
            case Ok(0):
                logger.info("coupon %s exhausted at redemption", coupon_id)
                return Error(Errors.coupon_exhausted())
            case Ok(_):
                return Ok(None)
            case Error(e):
                logger.error("coupon redemption failed for %s: %s", coupon_id, e.__cause__)
                return Error(e)

    async def release(self, coupon_id: str) -> None:
        """Give back one use. Raises on store failure."""
        stmt = (
            update(CouponTable)
            .where(CouponTable.id == coupon_id, CouponTable.current_uses > 0)
            .values(current_uses=CouponTable.current_uses - 1, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        await self._store.execute(stmt)
        logger.info("coupon %s use released", coupon_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Admin
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CouponDraft:
    code: str
    discount_percentage: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    max_uses: int | None = None
    active: bool = True
    applicable_products: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CouponPatch:
    code: str | None = None
    discount_percentage: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    max_uses: int | None = None
    active: bool | None = None
    applicable_products: tuple[str, ...] | None = None


def _check_percentage(pct: int | None) -> ShopError | None:
    if pct is not None and not 0 < pct <= 100:
        return Errors.invalid("Discount percentage must be between 1 and 100")
    return None


class CouponAdmin:
    """All coupons, newest first, with write-through CRUD for administrators."""

    def __init__(self, store: RemoteStore, session: SessionManager, clock: Clock = utcnow) -> None:
        self._store = store
        self._session = session
        self._clock = clock
        self.coupons: list[Coupon] = []

    async def refresh(self) -> Result[list[Coupon], ShopError]:
        result = await L.catching_async(
            lambda: self._store.select(CouponTable, order_by="created_at", descending=True),
            on_error=lambda e: Errors.remote("load coupons", e),
        )
        match result:
            case Ok(rows):
                self.coupons = [coupon_from_row(row) for row in rows]
                return Ok(self.coupons)
            case Error(e):
                logger.error("coupon admin refresh failed: %s", e.__cause__)
                return Error(e)

    def coupon(self, coupon_id: str) -> Coupon | None:
        return next((c for c in self.coupons if c.id == coupon_id), None)

    async def add_coupon(self, draft: CouponDraft) -> Result[Coupon, ShopError]:
        code = normalize_code(draft.code)
        if not code:
            return Error(Errors.invalid("Coupon code is required"))
        if (invalid := _check_percentage(draft.discount_percentage)) is not None:
            return Error(invalid)
        if (taken := await self._code_taken(code)) is not None:
            return Error(taken)

        now = self._clock()
        coupon_id = f"coupon-{unique_epoch_ms()}"
        values = to_columns(draft) | {
            "id": coupon_id,
            "code": code,
            "current_uses": 0,
            "valid_from": draft.valid_from or now,
            "created_at": now,
        }
        match await admin_write(
            self._session,
            "add coupons",
            lambda: self._store.insert(CouponTable, values),
            self.refresh,
        ):
            case Ok(row):
                return Ok(self.coupon(coupon_id) or coupon_from_row(row))
            case Error(e):
                return Error(e)

    async def update_coupon(self, coupon_id: str, patch: CouponPatch) -> Result[None, ShopError]:
        changes = to_columns(patch)
        if not changes:
            return Error(Errors.invalid("Nothing to update"))
        if (invalid := _check_percentage(patch.discount_percentage)) is not None:
            return Error(invalid)
        if patch.code is not None:
            changes["code"] = normalize_code(patch.code)
            if (taken := await self._code_taken(changes["code"], exclude=coupon_id)) is not None:
                return Error(taken)
        result = await admin_write(
            self._session,
            "update coupons",
            lambda: self._store.update(CouponTable, changes, where={"id": coupon_id}),
            self.refresh,
        )
        return expect_row(result, "Coupon", coupon_id)

    async def delete_coupon(self, coupon_id: str) -> Result[None, ShopError]:
        result = await admin_write(
            self._session,
            "delete coupons",
            lambda: self._store.delete(CouponTable, where={"id": coupon_id}),
            self.refresh,
        )
        return expect_row(result, "Coupon", coupon_id)

    async def toggle_coupon_active(self, coupon_id: str) -> Result[bool, ShopError]:
        coupon = self.coupon(coupon_id)
        if coupon is None:
            return Error(Errors.not_found("Coupon", coupon_id))
        match await self.update_coupon(coupon_id, CouponPatch(active=not coupon.active)):
            case Ok(_):
                return Ok(not coupon.active)
            case Error(e):
                return Error(e)

    async def _code_taken(self, code: object, exclude: str | None = None) -> ShopError | None:
        found = await L.catching_async(
            lambda: self._store.select_one(CouponTable, code=code),
            on_error=lambda e: Errors.remote("check coupon code", e),
        )
        match found:
            case Ok(row) if row is not None and row.id != exclude:
                return Errors.invalid("Coupon code already exists")
            case Ok(_):
                return None
            case Error(e):
                return e


__all__ = (
    "normalize_code",
    "coupon_from_row",
    "match_coupon",
    "calculate_discount",
    "CouponEvaluator",
    "CouponDraft",
    "CouponPatch",
    "CouponAdmin",
)
