"""
Write-through helpers shared by the admin-facing mirrors.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from combinators import lift as L
from kungfu import Error, Ok, Result

from onlypremiums.errors import Errors, ShopError
from onlypremiums.session import SessionManager

logger = logging.getLogger(__name__)


async def admin_write[T](
    session: SessionManager,
    action: str,
    write: Callable[[], Awaitable[T]],
    refresh: Callable[[], Awaitable[object]],
) -> Result[T, ShopError]:
    """Check the admin role, run `write`, then `refresh` the mirror if it succeeded."""
    match session.require_admin(action):
        case Error(e):
            return Error(e)
    result = await L.catching_async(write, on_error=lambda e: Errors.remote(action, e))
    match result:
        case Ok(_):
            await refresh()
        case Error(e):
            logger.error("%s failed: %s", action, e.__cause__)
    return result


def expect_row(result: Result[int, ShopError], entity: str, key: str) -> Result[None, ShopError]:
    """Turn a rowcount into NOT_FOUND when nothing matched."""
    match result:
        case Ok(0):
            return Error(Errors.not_found(entity, key))
        case Ok(_):
            return Ok(None)
        case Error(e):
            return Error(e)


__all__ = ("admin_write", "expect_row")
