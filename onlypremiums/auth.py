"""
Auth subsystem — credentials, the current session, and a sign-in/sign-out
event stream.

One AuthClient per browser session; many clients share one RemoteStore.

    auth = AuthClient(store)
    subscription = auth.on_auth_state_change(on_change)

    match await auth.sign_in("ana@example.com", "s3cret"):
        case Ok(session): ...
        case Error(e): ...            # INVALID_CREDENTIALS

    subscription.unsubscribe()
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from combinators import lift as L
from kungfu import Error, Ok, Result

from onlypremiums._time import utcnow
from onlypremiums.db import AuthUserTable
from onlypremiums.errors import ErrorCode, Errors, ShopError
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════

class AuthEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True, slots=True)
class AuthUser:
    id: str
    email: str


@dataclass(frozen=True, slots=True)
class AuthSession:
    user: AuthUser
    access_token: str
    created_at: datetime = field(default_factory=utcnow)


type AuthListener = Callable[[AuthEvent, AuthSession | None], Awaitable[None]]


@dataclass(slots=True)
class Subscription:
    _listeners: list[AuthListener]
    _listener: AuthListener

    def unsubscribe(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


# ═══════════════════════════════════════════════════════════════════════════════
# Passwords
# ═══════════════════════════════════════════════════════════════════════════════

def hash_password(password: str, salt: str) -> str:
    digest = hashlib.scrypt(password.encode(), salt=bytes.fromhex(salt), n=2**14, r=8, p=1)
    return digest.hex()


def verify_password(password: str, salt: str, expected: str) -> bool:
    return hmac.compare_digest(hash_password(password, salt), expected)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ═══════════════════════════════════════════════════════════════════════════════
# AuthClient
# ═══════════════════════════════════════════════════════════════════════════════

class AuthClient:
    def __init__(self, store: RemoteStore) -> None:
        self._store = store
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self._listeners, listener)

    async def get_session(self) -> AuthSession | None:
        return self._session

    async def sign_up(self, email: str, password: str) -> Result[AuthSession, ShopError]:
        """Create credentials and sign in. The email must not be registered yet."""
        email = normalize_email(email)
        if not email or "@" not in email:
            return Error(Errors.invalid("A valid email is required"))
        if len(password) < 6:
            return Error(Errors.invalid("Password should be at least 6 characters"))

        existing = await L.catching_async(
            lambda: self._store.select_one(AuthUserTable, email=email),
            on_error=lambda e: Errors.remote("look up account", e),
        )
        match existing:
            case Error(e):
                logger.error("sign-up lookup failed: %s", e.__cause__)
                return Error(e)
            case Ok(row) if row is not None:
                return Error(Errors.email_taken(email))

        salt = secrets.token_hex(16)
        created = await L.catching_async(
            lambda: self._store.insert(AuthUserTable, {
                "id": str(uuid.uuid4()),
                "email": email,
                "salt": salt,
                "password_hash": hash_password(password, salt),
            }),
            on_error=lambda e: Errors.remote("create account", e),
        )
        match created:
            case Ok(row):
                return Ok(await self._start_session(AuthUser(row.id, row.email)))
            case Error(e):
                logger.error("sign-up failed for %s: %s", email, e.__cause__)
                return Error(e)

    async def sign_in(self, email: str, password: str) -> Result[AuthSession, ShopError]:
        email = normalize_email(email)
        found = await L.catching_async(
            lambda: self._store.select_one(AuthUserTable, email=email),
            on_error=lambda e: Errors.remote("sign in", e),
        )
        match found:
            case Ok(row) if row is not None and verify_password(password, row.salt, row.password_hash):
                return Ok(await self._start_session(AuthUser(row.id, row.email)))
            case Ok(_):
                logger.info("rejected sign-in for %s", email)
                return Error(Errors.invalid_credentials())
            case Error(e):
                logger.error("sign-in failed for %s: %s", email, e.__cause__)
                return Error(e)

    async def sign_out(self) -> Result[None, ShopError]:
        if self._session is None:
            return Error(ShopError(ErrorCode.UNAUTHENTICATED, "No active session"))
        self._session = None
        await self._emit(AuthEvent.SIGNED_OUT, None)
        return Ok(None)

    async def _start_session(self, user: AuthUser) -> AuthSession:
        self._session = AuthSession(user=user, access_token=secrets.token_urlsafe(32))
        await self._emit(AuthEvent.SIGNED_IN, self._session)
        return self._session

    async def _emit(self, event: AuthEvent, session: AuthSession | None) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event, session)
            except Exception:
                logger.exception("auth listener failed on %s", event)


__all__ = (
    "AuthEvent",
    "AuthUser",
    "AuthSession",
    "AuthListener",
    "Subscription",
    "AuthClient",
    "hash_password",
    "verify_password",
    "normalize_email",
)
