"""End-to-end walkthrough on the in-memory store, exercising the public facade only."""

from __future__ import annotations

import pytest

from promptteams.core import InvitationStatus, PermissionDenied, Principal, PromptTeams, Role
from promptteams.core.mailer import NullMailer
from promptteams.core.settings import load_settings
from promptteams.tests.helpers import run_async

ALICE = Principal(id="u_alice", display_name="Alice", email="alice@acme.test")
BOB = Principal(id="u_bob", display_name="Bob", email="Bob@Acme.test")


class TestAcmeScenario:
    def test_full_flow(self, tmp_path) -> None:
        settings = load_settings(
            store_path=str(tmp_path / "store.json"),
            conflict_backoff_base=0.0,
            retry_backoff_base=0.0,
        )
        pt = PromptTeams.in_memory(settings, mailer=NullMailer())

        async def scenario():
            await pt.sign_in(ALICE)
            team = await pt.create_team("Acme")
            invite = await pt.create_invitation(team.id, "bob@acme.test", Role.MEMBER)

            await pt.sign_in(BOB)
            pending = await pt.list_pending_invitations()
            assert [p.id for p in pending] == [invite.invitation.id]
            accepted = await pt.accept_invitation(invite.invitation.id)
            assert accepted.status is InvitationStatus.ACCEPTED

            await pt.sign_in(ALICE)
            prompt = await pt.create_prompt(team.id, "Summarize", "Summarize in 3 bullets.")
            await pt.submit_rating(prompt.id, 3)

            await pt.sign_in(BOB)
            await pt.submit_rating(prompt.id, 5)
            assert await pt.toggle_favorite(prompt.id) is True
            # members can read but not administer
            with pytest.raises(PermissionDenied):
                await pt.create_invitation(team.id, "carol@acme.test")

            await pt.sign_in(ALICE)
            stats = await pt.submit_rating(prompt.id, 5)
            return team, stats, await pt.get_team(team.id)

        team, stats, fresh = run_async(scenario())
        assert stats.rating_histogram == {1: 0, 2: 0, 3: 0, 4: 0, 5: 2}
        assert stats.total_ratings == 2
        assert stats.average_rating == 5.0
        assert fresh.members == {ALICE.id: Role.OWNER, BOB.id: Role.MEMBER}

        # state survives a restart from the JSON file
        reopened = PromptTeams.in_memory(settings, mailer=NullMailer())

        async def reload():
            await reopened.sign_in(BOB)
            return await reopened.list_teams(), await reopened.list_favorites()

        teams, favorites = run_async(reload())
        assert [t.id for t in teams] == [team.id]
        assert favorites[0].snapshot_title == "Summarize"

    def test_unauthenticated_calls_rejected(self) -> None:
        from promptteams.core import Unauthenticated

        pt = PromptTeams.in_memory(load_settings(), mailer=NullMailer())
        with pytest.raises(Unauthenticated):
            run_async(pt.create_team("Acme"))
