"""
Catalog mirror — plans and products reflected from the store.

Reads replace the whole local view. Admin mutations write through and then
refresh; nothing is merged optimistically.

    catalog = CatalogMirror(store, session)
    await catalog.refresh()

    catalog.plans_in_category("design")
    catalog.get_product_info("figma")       # never fails, see default_product_info
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum

from combinators import lift as L
from kungfu import Error, Ok, Result

from onlypremiums._admin import admin_write, expect_row
from onlypremiums._time import epoch_ms
from onlypremiums.categories import ALL_CATEGORY, DEFAULT_CATEGORY
from onlypremiums.db import PlanTable, ProductTable
from onlypremiums.domain import ActivationMethod, Plan, PlanDuration, ProductInfo
from onlypremiums.errors import Errors, ShopError
from onlypremiums.money import percent_off
from onlypremiums.session import SessionManager
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_COLOR = "bg-gradient-to-br from-gray-500 to-gray-600"
DEFAULT_TEXT_COLOR = "text-gray-600"
DEFAULT_BG_LIGHT = "bg-gray-50"
DEFAULT_ICON = "📦"


def default_product_info(product_id: str) -> ProductInfo:
    """Placeholder for products the mirror does not know."""
    return ProductInfo(
        name=product_id,
        color=DEFAULT_COLOR,
        text_color=DEFAULT_TEXT_COLOR,
        bg_light=DEFAULT_BG_LIGHT,
        icon=DEFAULT_ICON,
        category=DEFAULT_CATEGORY,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Drafts and patches
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class PlanDraft:
    product_id: str
    name: str
    duration: PlanDuration
    price: int
    original_price: int
    description: str = ""
    features: tuple[str, ...] = ()
    activation_method: ActivationMethod = ActivationMethod.COUPON_CODE
    discount_percentage: int | None = None
    popular: bool = False
    active: bool = True
    image_url: str | None = None
    instructions_pdf_url: str | None = None
    instructions_text: str | None = None


@dataclass(frozen=True, slots=True)
class PlanPatch:
    """Fields left as None are not touched."""
    name: str | None = None
    description: str | None = None
    duration: PlanDuration | None = None
    price: int | None = None
    original_price: int | None = None
    discount_percentage: int | None = None
    features: tuple[str, ...] | None = None
    activation_method: ActivationMethod | None = None
    popular: bool | None = None
    active: bool | None = None
    image_url: str | None = None
    instructions_pdf_url: str | None = None
    instructions_text: str | None = None


@dataclass(frozen=True, slots=True)
class ProductPatch:
    name: str | None = None
    color: str | None = None
    text_color: str | None = None
    bg_light: str | None = None
    icon: str | None = None
    category: str | None = None
    description: str | None = None
    featured: bool | None = None
    active: bool | None = None


def to_columns(data: object) -> dict[str, object]:
    """Dataclass -> column values, skipping None; enums and tuples made storable."""
    columns: dict[str, object] = {}
    for key, value in asdict(data).items():  # type: ignore[call-overload]
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        columns[key] = value
    return columns


# ═══════════════════════════════════════════════════════════════════════════════
# Row mapping
# ═══════════════════════════════════════════════════════════════════════════════

def plan_from_row(row: PlanTable) -> Plan:
    discount = row.discount_percentage
    if discount is None:
        discount = percent_off(row.original_price, row.price)
    return Plan(
        id=row.id,
        product_id=row.product_id,
        name=row.name,
        description=row.description or "",
        duration=PlanDuration(row.duration),
        price=row.price,
        original_price=row.original_price,
        discount_percentage=discount,
        features=tuple(row.features or ()),
        activation_method=ActivationMethod(row.activation_method or ActivationMethod.COUPON_CODE),
        popular=bool(row.popular),
        active=row.active is not False,
        image_url=row.image_url,
        instructions_pdf_url=row.instructions_pdf_url,
        instructions_text=row.instructions_text,
        created_at=row.created_at,
    )


def product_from_row(row: ProductTable) -> ProductInfo:
    return ProductInfo(
        name=row.name,
        color=row.color,
        text_color=row.text_color,
        bg_light=row.bg_light,
        icon=row.icon,
        category=row.category or DEFAULT_CATEGORY,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog Mirror
# ═══════════════════════════════════════════════════════════════════════════════

class CatalogMirror:
    def __init__(self, store: RemoteStore, session: SessionManager) -> None:
        self._store = store
        self._session = session
        self.plans: list[Plan] = []
        self.products: dict[str, ProductInfo] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Refresh
    # ─────────────────────────────────────────────────────────────────────────

    async def refresh(self) -> None:
        await self.refresh_products()
        await self.refresh_plans()

    async def refresh_plans(self) -> Result[list[Plan], ShopError]:
        """On failure the previous list stays in place."""
        result = await L.catching_async(
            lambda: self._store.select(PlanTable, order_by="product_id"),
            on_error=lambda e: Errors.remote("load plans", e),
        )
        match result:
            case Ok(rows):
                self.plans = [plan_from_row(row) for row in rows]
                return Ok(self.plans)
            case Error(e):
                logger.error("plan refresh failed: %s", e.__cause__)
                return Error(e)

    async def refresh_products(self) -> Result[dict[str, ProductInfo], ShopError]:
        """On failure the product map is emptied."""
        result = await L.catching_async(
            lambda: self._store.select(ProductTable, order_by="name"),
            on_error=lambda e: Errors.remote("load products", e),
        )
        match result:
            case Ok(rows):
                self.products = {row.id: product_from_row(row) for row in rows}
                return Ok(self.products)
            case Error(e):
                logger.error("product refresh failed: %s", e.__cause__)
                self.products = {}
                return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────────

    def get_product_info(self, product_id: str) -> ProductInfo:
        return self.products.get(product_id) or default_product_info(product_id)

    def product(self, product_id: str) -> ProductInfo | None:
        return self.products.get(product_id)

    def plan(self, plan_id: str) -> Plan | None:
        return next((p for p in self.plans if p.id == plan_id), None)

    def plans_for_product(self, product_id: str) -> list[Plan]:
        return [p for p in self.plans if p.product_id == product_id]

    def plans_in_category(self, category: str) -> list[Plan]:
        if category == ALL_CATEGORY.id:
            return list(self.plans)
        return [p for p in self.plans if self.get_product_info(p.product_id).category == category]

    def active_plans(self) -> list[Plan]:
        return [p for p in self.plans if p.active]

    # ─────────────────────────────────────────────────────────────────────────
    # Admin: plans
    # ─────────────────────────────────────────────────────────────────────────

    async def add_plan(self, draft: PlanDraft) -> Result[Plan, ShopError]:
        plan_id = f"{draft.product_id}-{draft.duration.value}-{epoch_ms()}"
        values = to_columns(draft) | {"id": plan_id}
        match await admin_write(
            self._session,
            "add plans",
            lambda: self._store.insert(PlanTable, values),
            self.refresh_plans,
        ):
            case Ok(row):
                return Ok(self.plan(plan_id) or plan_from_row(row))
            case Error(e):
                return Error(e)

    async def update_plan(self, plan_id: str, patch: PlanPatch) -> Result[None, ShopError]:
        return await self._admin_update("update plans", PlanTable, "Plan", plan_id, to_columns(patch))

    async def delete_plan(self, plan_id: str) -> Result[None, ShopError]:
        return await self._admin_delete("delete plans", PlanTable, "Plan", plan_id)

    async def toggle_plan_active(self, plan_id: str) -> Result[bool, ShopError]:
        """Flip `active`; returns the new value."""
        plan = self.plan(plan_id)
        if plan is None:
            return Error(Errors.not_found("Plan", plan_id))
        match await self._admin_update("update plans", PlanTable, "Plan", plan_id, {"active": not plan.active}):
            case Ok(_):
                return Ok(not plan.active)
            case Error(e):
                return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # Admin: products
    # ─────────────────────────────────────────────────────────────────────────

    async def add_product(self, key: str, info: ProductInfo) -> Result[None, ShopError]:
        values = to_columns(info) | {
            "id": key,
            "description": f"Premium {info.name} subscription",
            "featured": False,
            "active": True,
        }
        match await admin_write(
            self._session,
            "add products",
            lambda: self._store.insert(ProductTable, values),
            self.refresh_products,
        ):
            case Ok(_):
                return Ok(None)
            case Error(e):
                return Error(e)

    async def update_product(self, key: str, patch: ProductPatch) -> Result[None, ShopError]:
        return await self._admin_update("update products", ProductTable, "Product", key, to_columns(patch))

    async def delete_product(self, key: str) -> Result[None, ShopError]:
        return await self._admin_delete("delete products", ProductTable, "Product", key)

    # ─────────────────────────────────────────────────────────────────────────
    # Write-through helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _refresher(self, table: type[object]) -> Callable[[], Awaitable[object]]:
        return self.refresh_plans if table is PlanTable else self.refresh_products

    async def _admin_update(
        self,
        action: str,
        table: type[PlanTable] | type[ProductTable],
        entity: str,
        key: str,
        changes: dict[str, object],
    ) -> Result[None, ShopError]:
        if not changes:
            return Error(Errors.invalid("Nothing to update"))
        result = await admin_write(
            self._session,
            action,
            lambda: self._store.update(table, changes, where={"id": key}),
            self._refresher(table),
        )
        return expect_row(result, entity, key)

    async def _admin_delete(
        self,
        action: str,
        table: type[PlanTable] | type[ProductTable],
        entity: str,
        key: str,
    ) -> Result[None, ShopError]:
        result = await admin_write(
            self._session,
            action,
            lambda: self._store.delete(table, where={"id": key}),
            self._refresher(table),
        )
        return expect_row(result, entity, key)


__all__ = (
    "DEFAULT_ICON",
    "default_product_info",
    "PlanDraft",
    "PlanPatch",
    "ProductPatch",
    "to_columns",
    "plan_from_row",
    "product_from_row",
    "CatalogMirror",
)
