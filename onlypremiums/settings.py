"""
Settings — environment-driven configuration.

Values come from the process environment, with a `.env` file loaded first
when present:

    ONLYPREMIUMS_DATABASE_URL=sqlite+aiosqlite:///onlypremiums.db
    ONLYPREMIUMS_RAZORPAY_KEY=rzp_test_xxx
    ONLYPREMIUMS_ORDER_POLICY=gated
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from enum import StrEnum

from dotenv import load_dotenv


class OrderStatusPolicy(StrEnum):
    """
    When an order becomes `completed`.

    GATED:  pending -> payment_pending -> completed, only on payment confirmation.
    LEGACY: inserted as completed; a cancelled payment leaves the row behind.
    """
    GATED = "gated"
    LEGACY = "legacy"


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///onlypremiums.db"
    payment_key: str = "rzp_test_onlypremiums"
    currency: str = "INR"
    store_name: str = "OnlyPremiums"
    order_policy: OrderStatusPolicy = OrderStatusPolicy.GATED
    profile_cache_ttl: float = 300.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv()
        defaults = cls()
        return cls(
            database_url=os.getenv("ONLYPREMIUMS_DATABASE_URL", defaults.database_url),
            payment_key=os.getenv("ONLYPREMIUMS_RAZORPAY_KEY", defaults.payment_key),
            currency=os.getenv("ONLYPREMIUMS_CURRENCY", defaults.currency),
            store_name=os.getenv("ONLYPREMIUMS_STORE_NAME", defaults.store_name),
            order_policy=OrderStatusPolicy(
                os.getenv("ONLYPREMIUMS_ORDER_POLICY", defaults.order_policy).lower()
            ),
            profile_cache_ttl=float(
                os.getenv("ONLYPREMIUMS_PROFILE_CACHE_TTL", defaults.profile_cache_ttl)
            ),
            log_level=os.getenv("ONLYPREMIUMS_LOG_LEVEL", defaults.log_level).upper(),
        )

    def with_policy(self, policy: OrderStatusPolicy) -> Settings:
        return replace(self, order_policy=policy)

    def with_database(self, url: str) -> Settings:
        return replace(self, database_url=url)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


__all__ = ("OrderStatusPolicy", "Settings", "configure_logging")
