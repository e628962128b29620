"""Tests for auth, the session manager and the profile cache."""

from kungfu import Error, LazyCoroResult, Ok

from onlypremiums.auth import AuthClient, AuthEvent, hash_password, verify_password
from onlypremiums.cache import LocalTier, cache
from onlypremiums.db import ClaimingInstructionTable, ProfileTable
from onlypremiums.domain import Role
from onlypremiums.errors import ErrorCode
from onlypremiums.session import SessionManager, default_name


class TestPasswords:
    def test_verify(self):
        digest = hash_password("secret1", "00ff")
        assert verify_password("secret1", "00ff", digest)
        assert not verify_password("secret2", "00ff", digest)


class TestAuthClient:
    """Tests for credentials and the event stream."""

    async def test_events_and_unsubscribe(self, store):
        auth = AuthClient(store)
        events = []

        async def listener(event, session):
            events.append((event, session is not None))

        subscription = auth.on_auth_state_change(listener)
        (await auth.sign_up("Cy@Example.com ", "secret3")).unwrap()
        await auth.sign_out()
        subscription.unsubscribe()
        await auth.sign_in("cy@example.com", "secret3")

        assert events == [(AuthEvent.SIGNED_IN, True), (AuthEvent.SIGNED_OUT, False)]

    async def test_duplicate_email(self, store):
        auth = AuthClient(store)
        (await auth.sign_up("cy@example.com", "secret3")).unwrap()

        result = await auth.sign_up("CY@example.com", "other12")

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.EMAIL_TAKEN

    async def test_short_password(self, store):
        result = await AuthClient(store).sign_up("cy@example.com", "123")

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.INVALID_INPUT

    async def test_wrong_password(self, store):
        auth = AuthClient(store)
        (await auth.sign_up("cy@example.com", "secret3")).unwrap()

        result = await auth.sign_in("cy@example.com", "nope123")

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.INVALID_CREDENTIALS

    async def test_sign_out_without_session(self, store):
        result = await AuthClient(store).sign_out()

        assert isinstance(result, Error)
        assert result.error.code == ErrorCode.UNAUTHENTICATED


class TestSessionManager:
    """Tests for profile loading and role checks."""

    async def test_register_uses_given_name(self, buyer, store):
        assert buyer.user.name == "Asha"
        assert buyer.user.role is Role.USER
        row = await store.select_one(ProfileTable, id=buyer.user.id)
        assert row.name == "Asha"

    async def test_missing_profile_gets_default(self, shop, store):
        (await AuthClient(store).sign_up("bo.k@example.com", "secret2")).unwrap()

        user = (await shop.login("bo.k@example.com", "secret2")).unwrap()

        assert user.name == "bo.k"
        assert await store.select_one(ProfileTable, id=user.id) is not None

    async def test_unsaved_default_profile_not_cached(self, shop, store, monkeypatch):
        (await AuthClient(store).sign_up("bo.k@example.com", "secret2")).unwrap()
        insert = store.insert

        async def refuse_profiles(model, values):
            if model is ProfileTable:
                raise RuntimeError("store offline")
            return await insert(model, values)

        monkeypatch.setattr(store, "insert", refuse_profiles)
        user = (await shop.login("bo.k@example.com", "secret2")).unwrap()
        assert user.name == "bo.k"
        assert await store.select_one(ProfileTable, id=user.id) is None

        monkeypatch.undo()
        await shop.logout()
        (await shop.login("bo.k@example.com", "secret2")).unwrap()

        assert await store.select_one(ProfileTable, id=user.id) is not None

    async def test_admin_role(self, admin, buyer):
        assert admin.session.is_admin
        assert isinstance(admin.session.require_admin("manage coupons"), Ok)
        assert not buyer.session.is_admin

        denied = buyer.session.require_admin("manage coupons")
        assert isinstance(denied, Error)
        assert denied.error.code == ErrorCode.FORBIDDEN

    async def test_logout_clears_state(self, buyer, store):
        await store.insert(ClaimingInstructionTable, {
            "id": "claim-figma", "plan_id": "figma-yearly",
            "method_title": "Invite", "instructions": "Secret invite link for Asha.",
        })
        await buyer.cart.add_item(buyer.catalog.plan("figma-yearly"))
        (await buyer.place_order()).unwrap()
        assert buyer.claims.has_claiming_access()
        await buyer.cart.add_item(buyer.catalog.plan("figma-yearly"))

        assert isinstance(await buyer.logout(), Ok)

        assert buyer.user is None
        assert not buyer.session.is_authenticated
        assert buyer.cart.items == []
        assert buyer.orders.orders == []
        assert not buyer.claims.has_claiming_access()
        assert buyer.claims.instructions == []
        assert buyer.claims.purchased == []
        assert isinstance(buyer.session.require_user("checkout"), Error)

    async def test_logout_clears_admin_coupons(self, admin, add_coupon):
        await add_coupon("SAVE40", 40)
        assert len((await admin.coupon_admin.refresh()).unwrap()) == 1

        await admin.logout()

        assert admin.coupon_admin.coupons == []

    async def test_update_profile(self, buyer):
        updated = (await buyer.session.update_profile(phone="9876543210")).unwrap()

        assert updated.phone == "9876543210"
        assert buyer.user.phone == "9876543210"
        assert buyer.user.name == "Asha"

    async def test_initialize_without_session(self, store):
        manager = SessionManager(AuthClient(store), store)

        assert await manager.initialize() is None
        manager.close()

    def test_default_name(self):
        assert default_name("asha.r@example.com") == "asha.r"
        assert default_name("@example.com") == "User"


class TestProfileCache:
    """Tests for the local tier and the read-through executor."""

    async def test_ttl_expiry(self):
        now = [0.0]
        tier = LocalTier(max_size=10, ttl=5, clock=lambda: now[0])
        await tier.set("k", "v")

        now[0] = 4.0
        assert await tier.get("k") == "v"
        now[0] = 10.0
        assert await tier.get("k") is None
        assert len(tier) == 0

    async def test_lru_eviction(self):
        tier = LocalTier(max_size=2)
        await tier.set("a", 1)
        await tier.set("b", 2)
        await tier.get("a")
        await tier.set("c", 3)

        assert await tier.get("b") is None
        assert await tier.get("a") == 1
        await tier.clear()
        assert len(tier) == 0

    async def test_read_through(self):
        calls = []

        def fetch(user_id):
            async def run():
                calls.append(user_id)
                return Ok(f"profile of {user_id}")
            return LazyCoroResult(run)

        profiles = cache(lambda uid: f"profile:{uid}", fetch).tier(LocalTier()).build()

        first = (await profiles.get("u1")).unwrap()
        second = (await profiles.get("u1")).unwrap()
        assert (first.hit, second.hit) == (False, True)
        assert await profiles.invalidate("u1")
        assert (await profiles.get("u1")).unwrap().hit is False
        assert calls == ["u1", "u1"]
