"""
Order book — order rows, their idempotency ledger, and order history.

An order is claimed with the checkout attempt's key; the same row then tracks
how the attempt ended:

    book = OrderBook(store, session)
    draft = OrderDraft(book.new_order_id(), user.id, items, total_amount=11940)

    match await book.create_order(draft, context.attempt_key):
        case Ok(order):
            ...
        case Error(e) if e.code == ErrorCode.CONFLICT:
            ...   # the same attempt is already in flight

    record = (await book.replay(context.attempt_key)).unwrap()
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime

from combinators import lift as L
from kungfu import Error, Ok, Result
from pydantic import TypeAdapter

from onlypremiums._time import unique_epoch_ms, utcnow
from onlypremiums.db import OrderTable
from onlypremiums.domain import CartItem, Order, OrderStatus
from onlypremiums.errors import Errors, ShopError
from onlypremiums.idempotency import IdempotencyRecord, SQLAlchemyStore, StoreError
from onlypremiums.session import SessionManager
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)

_ITEMS = TypeAdapter(list[CartItem])


# ═══════════════════════════════════════════════════════════════════════════════
# Drafts and rows
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class OrderDraft:
    order_id: str
    user_id: str
    items: tuple[CartItem, ...]
    total_amount: int
    status: OrderStatus = OrderStatus.PENDING
    coupon_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)


def draft_to_row(key: str, draft: OrderDraft) -> OrderTable:
    return OrderTable(
        id=draft.order_id,
        user_id=draft.user_id,
        items=_ITEMS.dump_python(list(draft.items), mode="json"),
        total_amount=draft.total_amount,
        status=draft.status.value,
        coupon_id=draft.coupon_id,
        created_at=draft.created_at,
        updated_at=draft.created_at,
        idempotency_key=key,
    )


def order_from_row(row: OrderTable) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        items=tuple(_ITEMS.validate_python(row.items or [])),
        total_amount=row.total_amount,
        status=OrderStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        payment_id=row.payment_id,
        coupon_id=row.coupon_id,
        license_key=row.license_key,
    )


def _store_error(operation: str, error: StoreError) -> ShopError:
    logger.error("%s: %s", operation, error.message)
    return Errors.remote(operation, error.cause)


# ═══════════════════════════════════════════════════════════════════════════════
# License keys
# ═══════════════════════════════════════════════════════════════════════════════

LICENSE_ALPHABET = string.ascii_uppercase + string.digits


def generate_license_key(segments: int = 4, segment_length: int = 4) -> str:
    """e.g. 'Q7ZK-0M3A-T1PX-9WEB'"""
    return "-".join(
        "".join(secrets.choice(LICENSE_ALPHABET) for _ in range(segment_length))
        for _ in range(segments)
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Order book
# ═══════════════════════════════════════════════════════════════════════════════

class OrderBook:
    def __init__(self, store: RemoteStore, session: SessionManager) -> None:
        self._store = store
        self._session = session
        self._ledger: SQLAlchemyStore[OrderTable, OrderDraft] = SQLAlchemyStore(
            store.session_factory,
            model=OrderTable,
            to_pending=draft_to_row,
        )
        self.orders: list[Order] = []

    @staticmethod
    def new_order_id() -> str:
        return f"ORD-{unique_epoch_ms()}"

    # ─────────────────────────────────────────────────────────────────────────
    # Attempt ledger
    # ─────────────────────────────────────────────────────────────────────────

    async def create_order(self, draft: OrderDraft, key: str) -> Result[Order, ShopError]:
        """Insert the order under `key`. CONFLICT if the key was already claimed."""
        match await self._ledger.with_pending(draft).set_pending(key):
            case Ok(True):
                logger.info("order %s created for %s (%s)", draft.order_id, draft.user_id, draft.status)
                return Ok(Order(
                    id=draft.order_id,
                    user_id=draft.user_id,
                    items=draft.items,
                    total_amount=draft.total_amount,
                    status=draft.status,
                    created_at=draft.created_at,
                    updated_at=draft.created_at,
                    coupon_id=draft.coupon_id,
                ))
            case Ok(False):
                logger.warning("checkout attempt %s already claimed", key)
                return Error(Errors.conflict("This checkout is already being processed"))
            case Error(e):
                return Error(_store_error("create order", e))

    async def replay(self, key: str) -> Result[IdempotencyRecord | None, ShopError]:
        """How an earlier attempt with `key` ended, or None if it never started."""
        match await self._ledger.get(key):
            case Ok(record):
                return Ok(record)
            case Error(e):
                return Error(_store_error("look up checkout attempt", e))

    async def complete_attempt(self, key: str, receipt: str) -> Result[None, ShopError]:
        match await self._ledger.set_completed(key, receipt):
            case Ok(_):
                return Ok(None)
            case Error(e):
                return Error(_store_error("record checkout result", e))

    async def fail_attempt(self, key: str, error: object) -> Result[None, ShopError]:
        match await self._ledger.set_failed(key, error):
            case Ok(_):
                return Ok(None)
            case Error(e):
                return Error(_store_error("record checkout failure", e))

    async def get_by_key(self, key: str) -> Result[Order | None, ShopError]:
        found = await L.catching_async(
            lambda: self._store.select_one(OrderTable, idempotency_key=key),
            on_error=lambda e: Errors.remote("load order", e),
        )
        match found:
            case Ok(row):
                return Ok(order_from_row(row) if row is not None else None)
            case Error(e):
                return Error(e)

    async def mark_status(
        self,
        order_id: str,
        status: OrderStatus,
        payment_id: str | None = None,
        license_key: str | None = None,
    ) -> Result[None, ShopError]:
        changes: dict[str, object] = {"status": status.value, "updated_at": utcnow()}
        if payment_id is not None:
            changes["payment_id"] = payment_id
        if license_key is not None:
            changes["license_key"] = license_key
        written = await L.catching_async(
            lambda: self._store.update(OrderTable, changes, where={"id": order_id}),
            on_error=lambda e: Errors.remote("update order", e),
        )
        match written:
            case Ok(0):
                return Error(Errors.not_found("Order", order_id))
            case Ok(_):
                logger.info("order %s -> %s", order_id, status)
                return Ok(None)
            case Error(e):
                logger.error("order %s status update failed: %s", order_id, e.__cause__)
                return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # History
    # ─────────────────────────────────────────────────────────────────────────

    async def refresh(self) -> Result[list[Order], ShopError]:
        """Admins see every order, everyone else only their own. Newest first."""
        user = self._session.user
        if user is None:
            self.orders = []
            return Ok(self.orders)
        where = None if user.is_admin else {"user_id": user.id}
        logger.debug("fetching orders for %s (role %s)", user.email, user.role)
        result = await L.catching_async(
            lambda: self._store.select(OrderTable, where=where, order_by="created_at", descending=True),
            on_error=lambda e: Errors.remote("load orders", e),
        )
        match result:
            case Ok(rows):
                self.orders = [order_from_row(row) for row in rows]
                return Ok(self.orders)
            case Error(e):
                logger.error("order refresh failed: %s", e.__cause__)
                return Error(e)

    def get_user_orders(self, user_id: str) -> list[Order]:
        return [o for o in self.orders if o.user_id == user_id]

    def get_all_orders(self) -> Result[list[Order], ShopError]:
        match self._session.require_admin("view all orders"):
            case Ok(_):
                return Ok(list(self.orders))
            case Error(e):
                return Error(e)


__all__ = (
    "OrderDraft",
    "draft_to_row",
    "order_from_row",
    "generate_license_key",
    "OrderBook",
)
