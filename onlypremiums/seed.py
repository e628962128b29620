"""
Demo data for the console and local development.

    store = await RemoteStore.connect(settings.database_url)
    await seed_demo(store)       # no-op when products already exist
"""

from __future__ import annotations

import logging
from datetime import timedelta

from onlypremiums._time import utcnow
from onlypremiums.auth import AuthClient
from onlypremiums.db import (
    ClaimingInstructionTable,
    CouponTable,
    PlanTable,
    ProductTable,
    ProfileTable,
)
from onlypremiums.domain import ActivationMethod, PlanDuration, Role
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@onlypremiums.in"
ADMIN_PASSWORD = "admin123"

PRODUCTS = (
    ("netflix", "Netflix", "bg-gradient-to-br from-red-600 to-red-700", "text-red-600", "bg-red-50", "🎬", "entertainment"),
    ("spotify", "Spotify", "bg-gradient-to-br from-green-500 to-green-600", "text-green-600", "bg-green-50", "🎵", "entertainment"),
    ("github-copilot", "GitHub Copilot", "bg-gradient-to-br from-gray-800 to-gray-900", "text-gray-800", "bg-gray-50", "💻", "developer-tools"),
    ("notion", "Notion", "bg-gradient-to-br from-gray-700 to-gray-800", "text-gray-700", "bg-gray-50", "📝", "productivity"),
    ("figma", "Figma", "bg-gradient-to-br from-purple-500 to-pink-500", "text-purple-600", "bg-purple-50", "🎨", "design"),
    ("chatgpt", "ChatGPT Plus", "bg-gradient-to-br from-emerald-500 to-teal-600", "text-emerald-600", "bg-emerald-50", "🤖", "ai-tools"),
)

# (product, duration, name, price, original price, popular, activation)
PLANS = (
    ("netflix", PlanDuration.MONTHLY, "Netflix Premium Monthly", 19900, 64900, True, ActivationMethod.ACCOUNT_UPGRADE),
    ("netflix", PlanDuration.YEARLY, "Netflix Premium Yearly", 199900, 778800, False, ActivationMethod.ACCOUNT_UPGRADE),
    ("spotify", PlanDuration.MONTHLY, "Spotify Premium Monthly", 5900, 11900, False, ActivationMethod.COUPON_CODE),
    ("github-copilot", PlanDuration.YEARLY, "Copilot Individual Yearly", 249900, 830000, True, ActivationMethod.LICENSE_KEY),
    ("notion", PlanDuration.YEARLY, "Notion Plus Yearly", 149900, 796800, False, ActivationMethod.ACCOUNT_UPGRADE),
    ("figma", PlanDuration.YEARLY, "Figma Professional Yearly", 299900, 1195200, False, ActivationMethod.MANUAL_SETUP),
    ("chatgpt", PlanDuration.MONTHLY, "ChatGPT Plus Monthly", 99900, 199900, True, ActivationMethod.MANUAL_SETUP),
)

FEATURES = {
    "netflix": ["4K Ultra HD", "4 screens at once", "Downloads on 6 devices"],
    "spotify": ["Ad-free music", "Offline listening", "Unlimited skips"],
    "github-copilot": ["Code completions", "Chat in the IDE", "All major editors"],
    "notion": ["Unlimited blocks", "Unlimited file uploads", "30 day page history"],
    "figma": ["Unlimited files", "Team libraries", "Dev mode"],
    "chatgpt": ["Latest models", "Image generation", "Advanced data analysis"],
}


def plan_id(product_id: str, duration: PlanDuration) -> str:
    return f"{product_id}-{duration.value}"


async def seed_demo(store: RemoteStore) -> bool:
    """Insert demo products, plans, coupons, instructions and an admin. False if already seeded."""
    if await store.select_one(ProductTable) is not None:
        logger.debug("store already seeded")
        return False

    now = utcnow()
    for key, name, color, text_color, bg_light, icon, category in PRODUCTS:
        await store.insert(ProductTable, {
            "id": key,
            "name": name,
            "color": color,
            "text_color": text_color,
            "bg_light": bg_light,
            "icon": icon,
            "category": category,
            "description": f"Premium {name} subscription",
            "featured": key in ("netflix", "chatgpt"),
        })

    for product_id, duration, name, price, original_price, popular, activation in PLANS:
        await store.insert(PlanTable, {
            "id": plan_id(product_id, duration),
            "product_id": product_id,
            "name": name,
            "description": f"{name} at a reseller price",
            "duration": duration.value,
            "price": price,
            "original_price": original_price,
            "features": FEATURES[product_id],
            "activation_method": activation.value,
            "popular": popular,
        })

    coupons = (
        ("coupon-welcome10", "WELCOME10", 10, now - timedelta(days=30), None, None),
        ("coupon-save40", "SAVE40", 40, now - timedelta(days=1), now + timedelta(days=30), 100),
        ("coupon-lastone", "LASTONE", 25, now - timedelta(days=1), None, 1),
        ("coupon-expired", "SUMMER20", 20, now - timedelta(days=90), now - timedelta(days=30), None),
    )
    for coupon_id, code, pct, valid_from, valid_until, max_uses in coupons:
        await store.insert(CouponTable, {
            "id": coupon_id,
            "code": code,
            "discount_percentage": pct,
            "valid_from": valid_from,
            "valid_until": valid_until,
            "max_uses": max_uses,
        })

    await store.insert(ClaimingInstructionTable, {
        "id": "claim-netflix-monthly",
        "plan_id": plan_id("netflix", PlanDuration.MONTHLY),
        "method_title": "Account upgrade",
        "instructions": "Reply to your order email with the Netflix account email you want upgraded.",
        "contact_info": "support@onlypremiums.in",
        "estimated_time": "Within 2 hours",
    })
    await store.insert(ClaimingInstructionTable, {
        "id": "claim-copilot-yearly",
        "plan_id": plan_id("github-copilot", PlanDuration.YEARLY),
        "method_title": "License key",
        "instructions": "Redeem the key from your dashboard at github.com/settings/copilot.",
        "estimated_time": "Instant",
        "link_url": "https://github.com/settings/copilot",
    })

    await seed_admin(store)
    logger.info("seeded %d products, %d plans, %d coupons", len(PRODUCTS), len(PLANS), len(coupons))
    return True


async def seed_admin(store: RemoteStore, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD) -> None:
    auth = AuthClient(store)
    session = (await auth.sign_up(email, password)).unwrap()
    await store.insert(ProfileTable, {
        "id": session.user.id,
        "email": session.user.email,
        "name": "Administrator",
        "role": Role.ADMIN.value,
    })
    await auth.sign_out()


__all__ = ("ADMIN_EMAIL", "ADMIN_PASSWORD", "plan_id", "seed_demo", "seed_admin")
