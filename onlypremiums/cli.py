"""
Interactive console over a seeded store.

Run: python -m onlypremiums      (or the `onlypremiums` script)

Payments go through the simulated widget; `checkout dismiss` and
`checkout fail` show the rollback paths.
"""

from __future__ import annotations

import asyncio

from kungfu import Error, Ok

from onlypremiums.catalog import CatalogMirror
from onlypremiums.money import format_currency
from onlypremiums.payments import SimulatedGateway, SimulatedOutcome
from onlypremiums.seed import ADMIN_EMAIL, ADMIN_PASSWORD, seed_demo
from onlypremiums.settings import Settings, configure_logging
from onlypremiums.storefront import Backend, Storefront


# ═══════════════════════════════════════════════════════════════════════════════
# Help
# ═══════════════════════════════════════════════════════════════════════════════

HELP_TEXT = f"""
┌─────────────────────────────────────────────────────────────────────────────┐
│                              COMMANDS                                       │
├─────────────────────────────────────────────────────────────────────────────┤
│  plans [category]            List plans, optionally for one category        │
│  login <email> <password>    Sign in                                        │
│  register <email> <pw> <name>  Create an account                            │
│  logout                      Sign out                                       │
│  whoami                      Show the signed-in user                        │
├─────────────────────────────────────────────────────────────────────────────┤
│  add <plan_id>               Add a plan to the cart                         │
│  remove <plan_id>            Remove a plan from the cart                    │
│  qty <plan_id> <n>           Set quantity (0 removes)                       │
│  cart                        Show cart and totals                           │
├─────────────────────────────────────────────────────────────────────────────┤
│  coupons                     List usable coupons                            │
│  apply <code>                Apply a coupon                                 │
│  unapply                     Remove the applied coupon                      │
├─────────────────────────────────────────────────────────────────────────────┤
│  checkout [dismiss|fail]     Pay; optionally simulate a cancelled widget    │
│  orders                      Order history                                  │
├─────────────────────────────────────────────────────────────────────────────┤
│  help                        Show this help                                 │
│  quit                        Exit                                           │
└─────────────────────────────────────────────────────────────────────────────┘

Admin login: {ADMIN_EMAIL} / {ADMIN_PASSWORD}
"""

BANNER = """
╔════════════════════════════════════════════════════════════════════════════╗
║                         ONLYPREMIUMS CONSOLE                               ║
╠════════════════════════════════════════════════════════════════════════════╣
║  Premium subscriptions at reseller prices. Amounts are shown in rupees.    ║
╚════════════════════════════════════════════════════════════════════════════╝
"""


def print_help() -> None:
    print(HELP_TEXT)


# ═══════════════════════════════════════════════════════════════════════════════
# Display
# ═══════════════════════════════════════════════════════════════════════════════

def print_plans(catalog: CatalogMirror, category: str = "all") -> None:
    plans = [p for p in catalog.plans_in_category(category) if p.active]
    print("\n┌──────────────────────────────────────────────────────────────────────┐")
    print(f"│  PLANS ({category}){'':{58 - len(category)}}│")
    print("├──────────────────────────────────────────────────────────────────────┤")
    for plan in plans:
        info = catalog.get_product_info(plan.product_id)
        badge = "★" if plan.popular else " "
        print(f"│ {badge} {info.icon} {plan.id:28} {format_currency(plan.price):>12} "
              f"({plan.discount_percentage:>2}% off) │")
    if not plans:
        print("│  (none)                                                              │")
    print("└──────────────────────────────────────────────────────────────────────┘")


def print_cart(shop: Storefront) -> None:
    if not shop.cart.items:
        print("  Your cart is empty.")
        return
    print("\n┌────────────────────────────────────────────────────────────┐")
    print("│  CART                                                      │")
    print("├────────────────────────────────────────────────────────────┤")
    for item in shop.cart.items:
        print(f"│  {item.quantity}x {item.plan.name:38} {format_currency(item.line_total):>14} │")
    subtotal = shop.cart.total
    discount = shop.coupons.calculate_discount(subtotal, shop.context)
    coupon = shop.context.applied_coupon
    print("├────────────────────────────────────────────────────────────┤")
    print(f"│  Subtotal:  {format_currency(subtotal):>46} │")
    print(f"│  You save:  {format_currency(shop.cart.savings):>46} │")
    if coupon is not None:
        label = f"Coupon {coupon.code}:"
        print(f"│  {label:11}-{format_currency(discount):>45} │")
    print(f"│  TOTAL:     {format_currency(subtotal - discount):>46} │")
    print("└────────────────────────────────────────────────────────────┘")


# ═══════════════════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════════════════

async def cmd_login(shop: Storefront, email: str, password: str) -> None:
    match await shop.login(email, password):
        case Ok(user):
            print(f"  ✓ Welcome back, {user.name}" + (" (admin)" if user.is_admin else ""))
        case Error(e):
            print(f"  ✗ {e.message}")


async def cmd_register(shop: Storefront, email: str, password: str, name: str) -> None:
    match await shop.register(email, password, name):
        case Ok(user):
            print(f"  ✓ Account created. Hi, {user.name}!")
        case Error(e):
            print(f"  ✗ {e.message}")


async def cmd_add(shop: Storefront, plan_id: str) -> None:
    plan = shop.catalog.plan(plan_id)
    if plan is None or not plan.active:
        print(f"  ✗ No such plan: {plan_id}")
        return
    match await shop.cart.add_item(plan):
        case Ok(_):
            print(f"  ✓ Added {plan.name}")
        case Error(e):
            print(f"  ✗ {e.message}")


async def cmd_checkout(shop: Storefront, gateway: SimulatedGateway, mode: str | None) -> None:
    try:
        gateway.outcome = SimulatedOutcome(mode) if mode else SimulatedOutcome.SUCCEED
    except ValueError:
        print("  Usage: checkout [dismiss|fail]")
        return
    summary = await shop.checkout.summary(shop.context)
    print(f"\n  Paying {format_currency(summary.total)} for {summary.items_count} item(s)...")
    match await shop.place_order():
        case Ok(receipt):
            print(f"""
╔════════════════════════════════════════════════╗
║  ORDER {receipt.order_id:39} ║
╠════════════════════════════════════════════════╣
║  Payment:  {receipt.payment_id:35} ║
║  Items:    {receipt.items_count:<35} ║
║  Paid:     {format_currency(receipt.total_amount):35} ║
║  License:  {receipt.license_key or 'pending':35} ║
╚════════════════════════════════════════════════╝
""")
            if not receipt.confirmed:
                print("  ⚠ Payment received; the order is awaiting confirmation.")
            if shop.claims.has_claiming_access():
                print("  ℹ Claiming instructions are available for your purchases.")
        case Error(e):
            print(f"  ✗ Checkout failed: [{e.code}] {e.message}")


def cmd_orders(shop: Storefront) -> None:
    if not shop.orders.orders:
        print("  No orders yet.")
        return
    for order in shop.orders.orders:
        when = order.created_at.strftime("%Y-%m-%d %H:%M")
        print(f"  {order.id:22} {when}  {order.status:16} {format_currency(order.total_amount):>12}")


def cmd_coupons(shop: Storefront) -> None:
    if not shop.coupons.available:
        print("  No coupons available right now.")
        return
    for coupon in shop.coupons.available:
        left = f"{coupon.max_uses - coupon.current_uses} left" if coupon.max_uses else "unlimited"
        print(f"  {coupon.code:12} {coupon.discount_percentage:>3}% off  ({left})")


# ═══════════════════════════════════════════════════════════════════════════════
# Main Loop
# ═══════════════════════════════════════════════════════════════════════════════

async def run_cli(settings: Settings | None = None) -> None:
    settings = settings or Settings.from_env()
    gateway = SimulatedGateway()
    backend = await Backend.connect(settings, gateway)
    await seed_demo(backend.store)
    shop = await backend.open_session()

    print(BANNER)
    print_help()
    print_plans(shop.catalog)

    try:
        while True:
            try:
                line = input("\n> ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break

            if not line:
                continue

            parts = line.split(maxsplit=3)
            cmd, args = parts[0].lower(), parts[1:]

            match cmd, args:
                case ("quit" | "exit" | "q"), _:
                    print("Bye!")
                    break
                case ("help" | "h" | "?"), _:
                    print_help()
                case "plans", []:
                    print_plans(shop.catalog)
                case "plans", [category]:
                    print_plans(shop.catalog, category)
                case "login", [email, password]:
                    await cmd_login(shop, email, password)
                case "register", [email, password, name]:
                    await cmd_register(shop, email, password, name)
                case "logout", _:
                    match await shop.logout():
                        case Ok(_):
                            print("  ✓ Signed out")
                        case Error(e):
                            print(f"  ✗ {e.message}")
                case "whoami", _:
                    user = shop.user
                    print(f"  {user.name} <{user.email}> [{user.role}]" if user else "  Not signed in")
                case "add", [plan_id]:
                    await cmd_add(shop, plan_id)
                case "remove", [plan_id]:
                    match await shop.cart.remove_item(plan_id):
                        case Error(e):
                            print(f"  ✗ {e.message}")
                        case Ok(_):
                            print("  ✓ Removed")
                case "qty", [plan_id, quantity] if quantity.lstrip("-").isdigit():
                    match await shop.cart.update_quantity(plan_id, int(quantity)):
                        case Error(e):
                            print(f"  ✗ {e.message}")
                        case Ok(_):
                            print_cart(shop)
                case "cart", _:
                    print_cart(shop)
                case "coupons", _:
                    cmd_coupons(shop)
                case "apply", [code]:
                    match shop.apply_coupon(code):
                        case Ok(coupon):
                            print(f"  ✓ {shop.coupons.applied_message(coupon)}")
                        case Error(invalid):
                            print(f"  ✗ {invalid.message}")
                case "unapply", _:
                    shop.remove_coupon()
                    print("  ✓ Coupon removed")
                case "checkout", []:
                    await cmd_checkout(shop, gateway, None)
                case "checkout", [mode]:
                    await cmd_checkout(shop, gateway, mode)
                case "orders", _:
                    cmd_orders(shop)
                case _:
                    print(f"  ✗ Unknown command or wrong arguments: {line}")
                    print("  Type 'help' for available commands.")
    finally:
        shop.session.close()
        await backend.close()


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    asyncio.run(run_cli(settings))


__all__ = ("run_cli", "main")
