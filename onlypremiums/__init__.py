"""
onlypremiums — storefront core for reselling premium software subscriptions.

    from onlypremiums import Backend, Settings

    backend = await Backend.connect(Settings.from_env())
    shop = await backend.open_session()

    await shop.login("asha@example.com", "secret1")
    await shop.cart.add_item(shop.catalog.plan("netflix-monthly"))
    shop.apply_coupon("SAVE40")

    match await shop.place_order():
        case Ok(receipt): ...
        case Error(e): ...            # CheckoutError: e.code, e.message
"""

from onlypremiums.checkout import CheckoutOrchestrator, CheckoutReceipt, CheckoutSummary
from onlypremiums.context import CheckoutContext
from onlypremiums.errors import CheckoutError, CouponInvalid, CouponRejection, ErrorCode, Errors, ShopError
from onlypremiums.settings import OrderStatusPolicy, Settings
from onlypremiums.storefront import Backend, Storefront

__version__ = "0.1.0"

__all__ = (
    "Backend",
    "Storefront",
    "Settings",
    "OrderStatusPolicy",
    "CheckoutContext",
    "CheckoutOrchestrator",
    "CheckoutReceipt",
    "CheckoutSummary",
    "ShopError",
    "CheckoutError",
    "ErrorCode",
    "Errors",
    "CouponInvalid",
    "CouponRejection",
)
