"""
Storefront wiring.

A `Backend` is process-wide: one store, one payment gateway, one settings
object. Each browser session gets its own `Storefront` with its own auth
session, mirrors, cart and checkout context, all sharing the backend's store.

    backend = await Backend.connect(Settings.from_env())
    shop = await backend.open_session()

    await shop.login("asha@example.com", "secret1")
    await shop.cart.add_item(shop.catalog.plans[0])
    shop.apply_coupon("SAVE40")
    receipt = await shop.place_order()
"""

from __future__ import annotations

import logging

from kungfu import Error, Ok, Result

from onlypremiums.auth import AuthClient
from onlypremiums.cart import CartAggregate
from onlypremiums.catalog import CatalogMirror
from onlypremiums.checkout import CheckoutOrchestrator, CheckoutReceipt
from onlypremiums.claims import ClaimingAccess
from onlypremiums.context import CheckoutContext
from onlypremiums.coupons import CouponAdmin, CouponEvaluator
from onlypremiums.domain import Coupon, User
from onlypremiums.errors import CheckoutError, CouponInvalid, ShopError
from onlypremiums.orders import OrderBook
from onlypremiums.payments import PaymentGateway, SimulatedGateway
from onlypremiums.session import SessionManager
from onlypremiums.settings import Settings
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


class Backend:
    def __init__(self, settings: Settings, store: RemoteStore, gateway: PaymentGateway) -> None:
        self.settings = settings
        self.store = store
        self.gateway = gateway

    @classmethod
    async def connect(cls, settings: Settings, gateway: PaymentGateway | None = None) -> Backend:
        store = await RemoteStore.connect(settings.database_url)
        logger.info("store ready at %s (order policy: %s)", settings.database_url, settings.order_policy)
        return cls(settings, store, gateway or SimulatedGateway())

    async def open_session(self) -> Storefront:
        shop = Storefront(self)
        await shop.start()
        return shop

    async def close(self) -> None:
        await self.store.close()


class Storefront:
    def __init__(self, backend: Backend) -> None:
        store = backend.store
        settings = backend.settings
        self.auth = AuthClient(store)
        self.session = SessionManager(self.auth, store, profile_cache_ttl=settings.profile_cache_ttl)
        self.catalog = CatalogMirror(store, self.session)
        self.cart = CartAggregate(store, self.session)
        self.coupons = CouponEvaluator(store)
        self.coupon_admin = CouponAdmin(store, self.session)
        self.orders = OrderBook(store, self.session)
        self.claims = ClaimingAccess(store)
        self.context = CheckoutContext()
        self.checkout = CheckoutOrchestrator(
            settings,
            self.session,
            self.cart,
            self.coupons,
            self.orders,
            backend.gateway,
        )

    @property
    def user(self) -> User | None:
        return self.session.user

    async def start(self) -> None:
        await self.session.initialize()
        await self.catalog.refresh()
        await self.coupons.load_active_coupons()
        if self.session.is_authenticated:
            await self._load_user_data()

    # ─────────────────────────────────────────────────────────────────────────
    # Identity
    # ─────────────────────────────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> Result[User, ShopError]:
        result = await self.session.login(email, password)
        if isinstance(result, Ok):
            await self._load_user_data()
        return result

    async def register(self, email: str, password: str, name: str) -> Result[User, ShopError]:
        result = await self.session.register(email, password, name)
        if isinstance(result, Ok):
            await self._load_user_data()
        return result

    async def logout(self) -> Result[None, ShopError]:
        result = await self.session.logout()
        self.cart.items = []
        self.orders.orders = []
        self.claims.clear()
        self.coupon_admin.coupons = []
        self.context = CheckoutContext()
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Shopping
    # ─────────────────────────────────────────────────────────────────────────

    def apply_coupon(self, code: str) -> Result[Coupon, CouponInvalid]:
        return self.coupons.apply(code, self.context)

    def remove_coupon(self) -> None:
        self.coupons.remove(self.context)

    async def place_order(self) -> Result[CheckoutReceipt, CheckoutError]:
        result = await self.checkout.checkout(self.context)
        # order history and coupon usage changed either way
        await self._refresh_orders()
        await self.coupons.load_active_coupons()
        return result

    async def _load_user_data(self) -> None:
        match await self.cart.load():
            case Error(e):
                logger.warning("cart not loaded: %s", e.message)
        await self._refresh_orders()

    async def _refresh_orders(self) -> None:
        match await self.orders.refresh():
            case Ok(_):
                user = self.session.user
                if user is not None:
                    await self.claims.load(self.orders.get_user_orders(user.id))
            case Error(e):
                logger.warning("orders not loaded: %s", e.message)


__all__ = ("Backend", "Storefront")
