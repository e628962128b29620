"""Tests for configuration and demo seeding."""

from onlypremiums.db import CouponTable, PlanTable, ProductTable
from onlypremiums.seed import ADMIN_EMAIL, ADMIN_PASSWORD, PLANS, PRODUCTS, seed_demo
from onlypremiums.settings import OrderStatusPolicy, Settings
from onlypremiums.storefront import Backend


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.order_policy is OrderStatusPolicy.GATED
        assert settings.currency == "INR"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ONLYPREMIUMS_ORDER_POLICY", "LEGACY")
        monkeypatch.setenv("ONLYPREMIUMS_DATABASE_URL", "sqlite+aiosqlite:///other.db")
        monkeypatch.setenv("ONLYPREMIUMS_PROFILE_CACHE_TTL", "12.5")

        settings = Settings.from_env()

        assert settings.order_policy is OrderStatusPolicy.LEGACY
        assert settings.database_url == "sqlite+aiosqlite:///other.db"
        assert settings.profile_cache_ttl == 12.5

    def test_with_policy(self):
        assert Settings().with_policy(OrderStatusPolicy.LEGACY).order_policy is OrderStatusPolicy.LEGACY


class TestSeed:
    async def test_seed_once(self, store):
        assert await seed_demo(store)
        assert not await seed_demo(store)

        assert len(await store.select(ProductTable)) == len(PRODUCTS)
        assert len(await store.select(PlanTable)) == len(PLANS)
        assert len(await store.select(CouponTable)) == 4

    async def test_seeded_storefront(self, settings):
        backend = await Backend.connect(settings)
        await seed_demo(backend.store)
        shop = await backend.open_session()

        admin = (await shop.login(ADMIN_EMAIL, ADMIN_PASSWORD)).unwrap()

        assert admin.is_admin
        assert shop.catalog.plan("netflix-monthly").discount_percentage == 69
        assert {c.code for c in shop.coupons.available} == {"WELCOME10", "SAVE40", "LASTONE"}
        await backend.close()
