"""Pytest fixtures for onlypremiums tests."""

from datetime import timedelta

import pytest

from onlypremiums._time import utcnow
from onlypremiums.db import CouponTable, PlanTable, ProductTable
from onlypremiums.domain import Plan, PlanDuration
from onlypremiums.payments import SimulatedGateway
from onlypremiums.seed import ADMIN_EMAIL, ADMIN_PASSWORD, seed_admin
from onlypremiums.settings import OrderStatusPolicy, Settings
from onlypremiums.storefront import Backend
from onlypremiums.store import RemoteStore


def make_plan(
    plan_id="figma-yearly",
    product_id="figma",
    price=19900,
    original_price=64900,
    duration=PlanDuration.YEARLY,
    **overrides,
):
    """Plan value object, not stored."""
    fields = dict(
        id=plan_id,
        product_id=product_id,
        name=f"{product_id} {duration}",
        description="",
        duration=duration,
        price=price,
        original_price=original_price,
        discount_percentage=0,
    )
    fields.update(overrides)
    return Plan(**fields)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}"


@pytest.fixture
async def store(database_url):
    store = await RemoteStore.connect(database_url)
    yield store
    await store.close()


@pytest.fixture
def gateway():
    return SimulatedGateway()


@pytest.fixture
def settings(database_url):
    return Settings(database_url=database_url)


@pytest.fixture
async def catalog_rows(store):
    """Two products with one plan each; the figma plan costs 19900."""
    await store.insert(ProductTable, {
        "id": "figma", "name": "Figma", "color": "c", "text_color": "t",
        "bg_light": "b", "icon": "🎨", "category": "design",
    })
    await store.insert(ProductTable, {
        "id": "notion", "name": "Notion", "color": "c", "text_color": "t",
        "bg_light": "b", "icon": "📝", "category": None,
    })
    await store.insert(PlanTable, {
        "id": "figma-yearly", "product_id": "figma", "name": "Figma Professional",
        "duration": "yearly", "price": 19900, "original_price": 64900,
        "features": ["Unlimited files", "Dev mode"],
    })
    await store.insert(PlanTable, {
        "id": "notion-monthly", "product_id": "notion", "name": "Notion Plus",
        "duration": "monthly", "price": 5000, "original_price": 10000,
        "discount_percentage": 55,
    })
    return store


@pytest.fixture
def add_coupon(store):
    """Insert a coupon row. Valid since yesterday unless told otherwise."""
    async def factory(code="SAVE40", pct=40, *, max_uses=None, current_uses=0,
                      valid_from=None, valid_until=None, active=True):
        now = utcnow()
        return await store.insert(CouponTable, {
            "id": f"coupon-{code.lower()}",
            "code": code,
            "discount_percentage": pct,
            "max_uses": max_uses,
            "current_uses": current_uses,
            "valid_from": valid_from or now - timedelta(days=1),
            "valid_until": valid_until,
            "active": active,
        })
    return factory


@pytest.fixture
def open_shop(settings, store, gateway, catalog_rows):
    """Open a storefront session (one browser tab) over the shared store."""
    async def factory(policy=OrderStatusPolicy.GATED):
        backend = Backend(settings.with_policy(policy), store, gateway)
        return await backend.open_session()
    return factory


@pytest.fixture
async def shop(open_shop):
    return await open_shop()


@pytest.fixture
async def buyer(open_shop):
    shop = await open_shop()
    (await shop.register("asha@example.com", "secret1", "Asha")).unwrap()
    return shop


@pytest.fixture
async def admin(open_shop, store):
    await seed_admin(store)
    shop = await open_shop()
    (await shop.login(ADMIN_EMAIL, ADMIN_PASSWORD)).unwrap()
    return shop
