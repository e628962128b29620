"""
Cart aggregate — one user's cart lines, mirrored from the store.

The store is authoritative: every mutation writes remotely first and touches
`items` only after the write succeeded. Mutations are serialized, so two
quick `add_item(plan)` calls end at quantity 2 rather than racing.

    cart = CartAggregate(store, session)
    await cart.load()
    await cart.add_item(plan)
    cart.total, cart.item_count
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from combinators import lift as L
from kungfu import Error, Ok, Result
from sqlalchemy import select

from onlypremiums._time import epoch_ms
from onlypremiums.catalog import plan_from_row
from onlypremiums.db import CartItemTable, PlanTable
from onlypremiums.domain import CartItem, Plan, User
from onlypremiums.errors import Errors, ShopError
from onlypremiums.money import calculate_savings, calculate_total
from onlypremiums.session import SessionManager
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


class CartAggregate:
    def __init__(self, store: RemoteStore, session: SessionManager) -> None:
        self._store = store
        self._session = session
        self._lock = asyncio.Lock()
        self.items: list[CartItem] = []

    # ─────────────────────────────────────────────────────────────────────────
    # Derived
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def total(self) -> int:
        return calculate_total(self.items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def savings(self) -> int:
        return calculate_savings(self.items)

    def find(self, plan_id: str) -> CartItem | None:
        return next((item for item in self.items if item.plan.id == plan_id), None)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    async def load(self) -> Result[list[CartItem], ShopError]:
        """Replace `items` with the user's rows. Rows whose plan is gone are dropped."""
        match self._session.require_user("view your cart"):
            case Error(e):
                self.items = []
                return Error(e)
            case Ok(user):
                pass

        stmt = (
            select(CartItemTable, PlanTable)
            .join(PlanTable, PlanTable.id == CartItemTable.plan_id)
            .where(CartItemTable.user_id == user.id)
        )
        result = await L.catching_async(
            lambda: self._store.fetch(stmt),
            on_error=lambda e: Errors.remote("load cart", e),
        )
        match result:
            case Ok(rows):
                self.items = [CartItem(plan=plan_from_row(plan), quantity=line.quantity) for line, plan in rows]
                return Ok(self.items)
            case Error(e):
                logger.error("cart load failed for %s: %s", user.id, e.__cause__)
                return Error(e)

    async def add_item(self, plan: Plan) -> Result[None, ShopError]:
        async with self._lock:
            match self._session.require_user("add items to your cart"):
                case Error(e):
                    return Error(e)
                case Ok(user):
                    pass

            existing = self.find(plan.id)
            if existing is not None:
                return await self._write_quantity(user, plan.id, existing.quantity + 1)

            values = {
                "id": f"cart-{user.id}-{plan.id}-{epoch_ms()}",
                "user_id": user.id,
                "plan_id": plan.id,
                "quantity": 1,
            }
            result = await L.catching_async(
                lambda: self._store.insert(CartItemTable, values),
                on_error=lambda e: Errors.remote("add item to cart", e),
            )
            match result:
                case Ok(_):
                    self.items = [*self.items, CartItem(plan=plan, quantity=1)]
                    return Ok(None)
                case Error(e):
                    logger.error("cart insert failed for %s/%s: %s", user.id, plan.id, e.__cause__)
                    return Error(e)

    async def remove_item(self, plan_id: str) -> Result[None, ShopError]:
        async with self._lock:
            return await self._remove(plan_id)

    async def update_quantity(self, plan_id: str, quantity: int) -> Result[None, ShopError]:
        """Set the quantity. Zero or less removes the line."""
        async with self._lock:
            if quantity <= 0:
                return await self._remove(plan_id)
            match self._session.require_user("update your cart"):
                case Error(e):
                    return Error(e)
                case Ok(user):
                    return await self._write_quantity(user, plan_id, quantity)

    async def clear(self) -> Result[None, ShopError]:
        async with self._lock:
            match self._session.require_user("clear your cart"):
                case Error(e):
                    return Error(e)
                case Ok(user):
                    pass
            result = await L.catching_async(
                lambda: self._store.delete(CartItemTable, where={"user_id": user.id}),
                on_error=lambda e: Errors.remote("clear cart", e),
            )
            match result:
                case Ok(_):
                    self.items = []
                    return Ok(None)
                case Error(e):
                    logger.error("cart clear failed for %s: %s", user.id, e.__cause__)
                    return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (caller holds the lock)
    # ─────────────────────────────────────────────────────────────────────────

    async def _remove(self, plan_id: str) -> Result[None, ShopError]:
        match self._session.require_user("remove items from your cart"):
            case Error(e):
                return Error(e)
            case Ok(user):
                pass
        result = await L.catching_async(
            lambda: self._store.delete(CartItemTable, where={"user_id": user.id, "plan_id": plan_id}),
            on_error=lambda e: Errors.remote("remove item from cart", e),
        )
        match result:
            case Ok(_):
                self.items = [item for item in self.items if item.plan.id != plan_id]
                return Ok(None)
            case Error(e):
                logger.error("cart delete failed for %s/%s: %s", user.id, plan_id, e.__cause__)
                return Error(e)

    async def _write_quantity(self, user: User, plan_id: str, quantity: int) -> Result[None, ShopError]:
        result = await L.catching_async(
            lambda: self._store.update(
                CartItemTable,
                {"quantity": quantity},
                where={"user_id": user.id, "plan_id": plan_id},
            ),
            on_error=lambda e: Errors.remote("update cart", e),
        )
        match result:
            case Ok(0):
                return Error(Errors.not_found("Cart item", plan_id))
            case Ok(_):
                self.items = [
                    replace(item, quantity=quantity) if item.plan.id == plan_id else item
                    for item in self.items
                ]
                return Ok(None)
            case Error(e):
                logger.error("cart update failed for %s/%s: %s", user.id, plan_id, e.__cause__)
                return Error(e)


__all__ = ("CartAggregate",)
