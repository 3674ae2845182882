"""Tests for the identity adapter, email normalization and profile upserts."""

from __future__ import annotations

import pytest

from promptteams.core.errors import InvalidArgument, Unauthenticated
from promptteams.core.identity import StaticIdentityProvider, normalize_email, upsert_profile
from promptteams.tests.helpers import ALICE, BOB, run_async


class TestStaticIdentityProvider:
    def test_unauthenticated_until_sign_in(self) -> None:
        provider = StaticIdentityProvider()
        with pytest.raises(Unauthenticated):
            provider.authenticate()
        provider.sign_in(ALICE)
        assert provider.authenticate() is ALICE

    def test_listeners_notified(self) -> None:
        provider = StaticIdentityProvider(ALICE)
        seen = []
        unsubscribe = provider.on_auth_change(seen.append)
        provider.sign_in(BOB)
        provider.sign_out()
        unsubscribe()
        provider.sign_in(ALICE)
        assert seen == [ALICE, BOB, None]


class TestNormalizeEmail:
    def test_trim_and_lower(self) -> None:
        assert normalize_email("  Bob@Example.COM ") == "bob@example.com"

    @pytest.mark.parametrize("email", [None, "", "plain", "a@", "@b.com", "a b@c.com", "a@.com", "a@com."])
    def test_rejects_malformed(self, email) -> None:
        with pytest.raises(InvalidArgument):
            normalize_email(email)


class TestUpsertProfile:
    def test_merge_keeps_other_fields(self, store) -> None:
        async def scenario():
            await store.set("users", ALICE.id, {"theme": "dark"})
            return await upsert_profile(store, ALICE), await store.get("users", ALICE.id)

        profile, snap = run_async(scenario())
        assert profile.email == "alice@acme.test"
        assert profile.display_name == "Alice"
        assert profile.last_seen is not None
        assert snap.data["theme"] == "dark"


class TestFacadeSignIn:
    def test_sign_in_writes_normalized_profile(self, pt, store) -> None:
        async def scenario():
            profile = await pt.sign_in(BOB)
            return profile, await store.get("users", BOB.id)

        profile, snap = run_async(scenario())
        assert profile.email == BOB.email.strip().lower()
        assert snap.exists
        assert snap.data["email"] == profile.email

    def test_sync_profile_requires_principal(self, pt) -> None:
        with pytest.raises(Unauthenticated):
            run_async(pt.sync_profile())
