"""
Claiming access — what a buyer owns and how to redeem it.

    access = ClaimingAccess(store)
    await access.load(orders.get_user_orders(user.id))

    if access.has_claiming_access():
        order = access.most_recent_order_with_claiming()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from combinators import lift as L
from kungfu import Error, Ok, Result

from onlypremiums.db import ClaimingInstructionTable
from onlypremiums.domain import ClaimingInstruction, Order, OrderStatus, PurchasedPlan
from onlypremiums.errors import Errors, ShopError
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


def purchased_plans(orders: Iterable[Order]) -> list[PurchasedPlan]:
    """One entry per plan across completed orders, newest purchase first."""
    completed = sorted(
        (o for o in orders if o.status is OrderStatus.COMPLETED),
        key=lambda o: o.created_at,
        reverse=True,
    )
    seen: set[str] = set()
    purchased: list[PurchasedPlan] = []
    for order in completed:
        for item in order.items:
            plan = item.plan
            if plan.id in seen:
                continue
            seen.add(plan.id)
            purchased.append(PurchasedPlan(
                plan_id=plan.id,
                plan_name=plan.name or f"{plan.product_id} {plan.duration}",
                product_id=plan.product_id,
                order_id=order.id,
                purchased_at=order.created_at,
            ))
    return purchased


def instruction_from_row(row: ClaimingInstructionTable) -> ClaimingInstruction:
    return ClaimingInstruction(
        id=row.id,
        plan_id=row.plan_id,
        method_title=row.method_title,
        instructions=row.instructions,
        contact_info=row.contact_info,
        estimated_time=row.estimated_time,
        link_url=row.link_url,
    )


class ClaimingAccess:
    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._orders: dict[str, Order] = {}
        self.purchased: list[PurchasedPlan] = []
        self.instructions: list[ClaimingInstruction] = []

    def clear(self) -> None:
        self._orders = {}
        self.purchased = []
        self.instructions = []

    async def load(self, orders: Iterable[Order]) -> Result[list[ClaimingInstruction], ShopError]:
        """Fetch instructions for every plan bought in a completed order."""
        orders = list(orders)
        self._orders = {o.id: o for o in orders}
        self.purchased = purchased_plans(orders)
        if not self.purchased:
            self.instructions = []
            return Ok(self.instructions)

        plan_ids = [p.plan_id for p in self.purchased]
        result = await L.catching_async(
            lambda: self._store.select(ClaimingInstructionTable, where_in=("plan_id", plan_ids)),
            on_error=lambda e: Errors.remote("load claiming instructions", e),
        )
        match result:
            case Ok(rows):
                self.instructions = [instruction_from_row(row) for row in rows]
                return Ok(self.instructions)
            case Error(e):
                logger.error("claiming instructions failed to load: %s", e.__cause__)
                return Error(e)

    def has_claiming_access(self, plan_id: str | None = None) -> bool:
        """Any instructions at all, or instructions for `plan_id`."""
        if plan_id is None:
            return bool(self.instructions)
        return any(i.plan_id == plan_id for i in self.instructions)

    def instructions_for(self, plan_id: str) -> list[ClaimingInstruction]:
        return [i for i in self.instructions if i.plan_id == plan_id]

    def most_recent_order_with_claiming(self) -> Order | None:
        claimable = {i.plan_id for i in self.instructions}
        # `purchased` is already newest first
        for plan in self.purchased:
            if plan.plan_id in claimable:
                return self._orders.get(plan.order_id)
        return None


__all__ = ("purchased_plans", "instruction_from_row", "ClaimingAccess")
