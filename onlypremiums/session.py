"""
Session/identity manager — who is signed in, and as what role.

Follows the auth event stream: SIGNED_IN loads the profile (through a small
TTL cache), SIGNED_OUT clears it. A user without a profile row gets a
default one synthesized from the email address.
"""

from __future__ import annotations

import logging

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from onlypremiums._time import utcnow
from onlypremiums.auth import AuthClient, AuthEvent, AuthSession, AuthUser
from onlypremiums.cache import CacheExecutor, LocalTier, cache
from onlypremiums.db import ProfileTable
from onlypremiums.domain import Role, User
from onlypremiums.errors import Errors, ShopError
from onlypremiums.store import RemoteStore

logger = logging.getLogger(__name__)


def profile_to_user(row: ProfileTable) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        role=Role(row.role) if row.role in Role else Role.USER,
        created_at=row.created_at,
        phone=row.phone,
    )


def default_name(email: str) -> str:
    return email.split("@")[0] or "User"


class SessionManager:
    def __init__(
        self,
        auth: AuthClient,
        store: RemoteStore,
        *,
        profile_cache_ttl: float = 300.0,
    ) -> None:
        self._auth = auth
        self._store = store
        self._user: User | None = None
        self._pending_names: dict[str, str] = {}
        self._profiles: CacheExecutor[AuthUser, User, ShopError] = (
            cache(lambda u: f"profile:{u.id}", self._fetch_profile)
            .tier(LocalTier(max_size=256, ttl=profile_cache_ttl))
            .build()
        )
        self._subscription = auth.on_auth_state_change(self._on_auth_change)

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def is_admin(self) -> bool:
        return self._user is not None and self._user.is_admin

    def require_user(self, action: str) -> Result[User, ShopError]:
        if self._user is None:
            logger.warning("rejected %r: no signed-in user", action)
            return Error(Errors.unauthenticated(action))
        return Ok(self._user)

    def require_admin(self, action: str) -> Result[User, ShopError]:
        match self.require_user(action):
            case Ok(user) if user.is_admin:
                return Ok(user)
            case Ok(user):
                logger.warning("rejected %r for non-admin %s", action, user.id)
                return Error(Errors.forbidden(action))
            case Error(e):
                return Error(e)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    async def initialize(self) -> User | None:
        """Pick up an existing session, if any."""
        session = await self._auth.get_session()
        self._user = await self._load(session.user) if session else None
        return self._user

    async def login(self, email: str, password: str) -> Result[User, ShopError]:
        match await self._auth.sign_in(email, password):
            case Ok(session):
                return Ok(self._user or await self._load(session.user))
            case Error(e):
                return Error(e)

    async def register(self, email: str, password: str, name: str) -> Result[User, ShopError]:
        self._pending_names[email.strip().lower()] = name
        try:
            match await self._auth.sign_up(email, password):
                case Ok(session):
                    return Ok(self._user or await self._load(session.user))
                case Error(e):
                    return Error(e)
        finally:
            self._pending_names.pop(email.strip().lower(), None)

    async def logout(self) -> Result[None, ShopError]:
        return await self._auth.sign_out()

    async def refresh_user(self) -> User | None:
        session = await self._auth.get_session()
        if session is None:
            self._user = None
            return None
        await self._profiles.invalidate(session.user)
        self._user = await self._load(session.user)
        return self._user

    async def update_profile(
        self,
        *,
        name: str | None = None,
        phone: str | None = None,
    ) -> Result[User, ShopError]:
        match self.require_user("update your profile"):
            case Error(e):
                return Error(e)
            case Ok(user):
                pass
        changes = {k: v for k, v in (("name", name), ("phone", phone)) if v is not None}
        written = await L.catching_async(
            lambda: self._store.update(ProfileTable, changes, where={"id": user.id}),
            on_error=lambda e: Errors.remote("update profile", e),
        )
        match written:
            case Ok(_):
                refreshed = await self.refresh_user()
                return Ok(refreshed or user)
            case Error(e):
                logger.error("profile update failed for %s: %s", user.id, e.__cause__)
                return Error(e)

    def close(self) -> None:
        self._subscription.unsubscribe()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _on_auth_change(self, event: AuthEvent, session: AuthSession | None) -> None:
        match event:
            case AuthEvent.SIGNED_IN if session is not None:
                self._user = await self._load(session.user)
            case AuthEvent.SIGNED_OUT:
                self._user = None

    async def _load(self, auth_user: AuthUser) -> User:
        match await self._profiles.get(auth_user):
            case Ok(found):
                return found.value
            case Error(e):
                # keep the session usable; the default is not cached
                logger.error("profile lookup failed for %s: %s", auth_user.id, e.message)
                return self._default_user(auth_user)

    def _fetch_profile(self, auth_user: AuthUser) -> LazyCoroResult[User, ShopError]:
        async def fetch() -> Result[User, ShopError]:
            found = await L.catching_async(
                lambda: self._store.select_one(ProfileTable, id=auth_user.id),
                on_error=lambda e: Errors.remote("load profile", e),
            )
            match found:
                case Ok(row) if row is not None:
                    return Ok(profile_to_user(row))
                case Ok(_):
                    return await self._create_default_profile(auth_user)
                case Error(e):
                    return Error(e)

        return LazyCoroResult(fetch)

    def _default_user(self, auth_user: AuthUser) -> User:
        name = self._pending_names.get(auth_user.email) or default_name(auth_user.email)
        return User(id=auth_user.id, email=auth_user.email, name=name, role=Role.USER, created_at=utcnow())

    async def _create_default_profile(self, auth_user: AuthUser) -> Result[User, ShopError]:
        """Store a default profile. An Error here keeps the unsaved default out of the cache."""
        user = self._default_user(auth_user)
        inserted = await L.catching_async(
            lambda: self._store.insert(ProfileTable, {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "role": user.role.value,
            }),
            on_error=lambda e: Errors.remote("store profile", e),
        )
        match inserted:
            case Ok(_):
                return Ok(user)
            case Error(e):
                logger.warning("could not store default profile for %s: %s", user.id, e.__cause__)
                return Error(e)


__all__ = ("SessionManager", "profile_to_user", "default_name")
