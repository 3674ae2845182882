"""Tests for prompts, comments, favorites and the activity feed."""

from __future__ import annotations

import pytest

from promptteams.core.collections import COMMENTS, RATINGS
from promptteams.core.errors import InvalidArgument, NotFound, PermissionDenied
from promptteams.core.models import Role
from promptteams.tests.helpers import ALICE, BOB, CAROL, MALLORY, make_team, run_async


class TestPromptCrud:
    def test_create_and_get(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            created = await pt.create_prompt(team.id, " Title ", "Body", ["a", " a ", "b", ""])
            return created, await pt.get_prompt(created.id)

        created, fetched = run_async(scenario())
        assert fetched.title == "Title"
        assert fetched.tags == ["a", "b"]
        assert fetched.creator_id == ALICE.id
        assert fetched.stats.total_ratings == 0
        assert fetched.stats.rating_histogram == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
        assert created.created_at == fetched.created_at

    @pytest.mark.parametrize("title,text", [("", "Body"), ("Title", "  "), (None, "Body")])
    def test_blank_fields_rejected(self, pt, title, text) -> None:
        async def scenario():
            team = await make_team(pt)
            await pt.create_prompt(team.id, title, text)

        with pytest.raises(InvalidArgument):
            run_async(scenario())

    def test_member_creates_and_edits_own(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            await pt.sign_in(BOB)
            prompt = await pt.create_prompt(team.id, "Mine", "Body")
            return await pt.update_prompt(prompt.id, title="Still mine", tags=["x"])

        updated = run_async(scenario())
        assert updated.title == "Still mine"
        assert updated.tags == ["x"]
        assert updated.updated_at > updated.created_at

    def test_member_cannot_edit_others(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "Alice's", "Body")
            await pt.sign_in(BOB)
            await pt.update_prompt(prompt.id, title="Hijacked")

        with pytest.raises(PermissionDenied):
            run_async(scenario())

    def test_stats_not_editable(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.update_prompt(prompt.id, stats={"total_ratings": 99})

        with pytest.raises(InvalidArgument):
            run_async(scenario())

    def test_list_newest_first(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            first = await pt.create_prompt(team.id, "First", "Body")
            second = await pt.create_prompt(team.id, "Second", "Body")
            return first, second, await pt.list_prompts(team.id)

        first, second, listed = run_async(scenario())
        assert [p.id for p in listed] == [second.id, first.id]

    def test_delete_cascades(self, pt, store) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.ADMIN)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.submit_rating(prompt.id, 5)
            await pt.add_comment(prompt.id, "nice")
            await pt.sign_in(BOB)
            await pt.delete_prompt(prompt.id)
            ratings = await store.query(RATINGS, [("resource_id", "==", prompt.id)])
            comments = await store.query(COMMENTS, [("resource_id", "==", prompt.id)])
            return prompt, ratings, comments

        prompt, ratings, comments = run_async(scenario())
        assert ratings == []
        assert comments == []
        with pytest.raises(NotFound):
            run_async(pt.get_prompt(prompt.id))


class TestComments:
    def test_thread_and_counter(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            root = await pt.add_comment(prompt.id, "first")
            await pt.sign_in(BOB)
            reply = await pt.add_comment(prompt.id, "reply", parent_id=root.id)
            return prompt, root, reply, await pt.list_comments(prompt.id), await pt.get_prompt(prompt.id)

        prompt, root, reply, listed, fresh = run_async(scenario())
        assert [c.id for c in listed] == [root.id, reply.id]
        assert reply.parent_id == root.id
        assert fresh.stats.usage_counters["comments"] == 2

    def test_only_author_edits(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.ADMIN)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            comment = await pt.add_comment(prompt.id, "mine")
            await pt.sign_in(BOB)
            await pt.edit_comment(comment.id, "not yours")

        with pytest.raises(PermissionDenied):
            run_async(scenario())

    def test_admin_deletes_thread(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER), (CAROL, Role.ADMIN)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.sign_in(BOB)
            root = await pt.add_comment(prompt.id, "root")
            await pt.add_comment(prompt.id, "reply", parent_id=root.id)
            await pt.sign_in(CAROL)
            removed = await pt.delete_comment(root.id)
            return removed, await pt.list_comments(prompt.id), await pt.get_prompt(prompt.id)

        removed, listed, prompt = run_async(scenario())
        assert removed == 2
        assert listed == []
        assert prompt.stats.usage_counters["comments"] == 0

    def test_member_cannot_delete_others(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            comment = await pt.add_comment(prompt.id, "owner's")
            await pt.sign_in(BOB)
            await pt.delete_comment(comment.id)

        with pytest.raises(PermissionDenied):
            run_async(scenario())

    def test_non_member_cannot_comment(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.sign_in(MALLORY)
            await pt.add_comment(prompt.id, "hi")

        with pytest.raises(PermissionDenied):
            run_async(scenario())

    def test_blank_comment(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.add_comment(prompt.id, "   ")

        with pytest.raises(InvalidArgument):
            run_async(scenario())

    def test_removed_member_cannot_edit_or_delete_own_comment(self, pt) -> None:
        async def setup():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.sign_in(BOB)
            comment = await pt.add_comment(prompt.id, "before removal")
            await pt.sign_in(ALICE)
            await pt.remove_member(team.id, BOB.id)
            await pt.sign_in(BOB)
            return comment

        comment = run_async(setup())
        with pytest.raises(PermissionDenied):
            run_async(pt.edit_comment(comment.id, "edited after removal"))
        with pytest.raises(PermissionDenied):
            run_async(pt.delete_comment(comment.id))

        run_async(pt.sign_in(ALICE))
        assert [c.text for c in run_async(pt.list_comments(comment.resource_id))] == ["before removal"]

    def test_author_deletes_own_comment(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.sign_in(BOB)
            comment = await pt.add_comment(prompt.id, "mine")
            return await pt.delete_comment(comment.id), await pt.list_comments(prompt.id)

        removed, listed = run_async(scenario())
        assert removed == 1
        assert listed == []

    def test_replies_are_one_level_deep(self, pt) -> None:
        async def setup():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            root = await pt.add_comment(prompt.id, "root")
            reply = await pt.add_comment(prompt.id, "reply", parent_id=root.id)
            return prompt, root, reply

        prompt, root, reply = run_async(setup())
        with pytest.raises(InvalidArgument):
            run_async(pt.add_comment(prompt.id, "grandchild", parent_id=reply.id))

        removed = run_async(pt.delete_comment(root.id))
        assert removed == 2
        assert run_async(pt.list_comments(prompt.id)) == []
        assert run_async(pt.get_prompt(prompt.id)).stats.usage_counters["comments"] == 0


class TestFavorites:
    def test_toggle_round_trip(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body", ["tag"])
            states = [await pt.toggle_favorite(prompt.id), await pt.is_favorite(prompt.id)]
            states += [await pt.toggle_favorite(prompt.id), await pt.is_favorite(prompt.id)]
            return states

        assert run_async(scenario()) == [True, True, False, False]

    def test_add_and_remove_are_idempotent(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            first = await pt.add_favorite(prompt.id)
            second = await pt.add_favorite(prompt.id)
            listed = await pt.list_favorites()
            await pt.remove_favorite(prompt.id)
            await pt.remove_favorite(prompt.id)
            return first, second, listed, await pt.list_favorites()

        first, second, listed, after = run_async(scenario())
        assert first.added_at == second.added_at
        assert len(listed) == 1
        assert after == []

    def test_snapshot_survives_team_deletion(self, pt) -> None:
        async def scenario():
            team = await make_team(pt, members=[(BOB, Role.MEMBER)])
            prompt = await pt.create_prompt(team.id, "Keep me", "Body", ["t"])
            await pt.sign_in(BOB)
            await pt.add_favorite(prompt.id)
            await pt.sign_in(ALICE)
            await pt.update_prompt(prompt.id, title="Changed")
            await pt.delete_team(team.id)
            await pt.sign_in(BOB)
            return await pt.list_favorites()

        favorites = run_async(scenario())
        assert len(favorites) == 1
        fav = favorites[0]
        assert fav.snapshot_title == "Keep me"
        assert fav.snapshot_tags == ["t"]
        assert fav.team_name == "Acme"
        assert fav.original_author == ALICE.id

    def test_non_member_cannot_favorite(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.sign_in(MALLORY)
            await pt.add_favorite(prompt.id)

        with pytest.raises(PermissionDenied):
            run_async(scenario())


class TestActivityFeed:
    def test_prompt_lifecycle_recorded_newest_first(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            prompt = await pt.create_prompt(team.id, "T", "Body")
            await pt.update_prompt(prompt.id, text="Body v2")
            await pt.delete_prompt(prompt.id)
            return await pt.list_activities(team.id)

        activities = run_async(scenario())
        assert [a.type.value for a in activities] == ["prompt_deleted", "prompt_updated", "prompt_created"]
        assert activities[1].metadata == {"fields": ["text"]}

    def test_limit(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            for i in range(3):
                await pt.create_prompt(team.id, f"T{i}", "Body")
            return await pt.list_activities(team.id, limit=2)

        assert len(run_async(scenario())) == 2

    def test_non_member_cannot_read(self, pt) -> None:
        async def scenario():
            team = await make_team(pt)
            await pt.sign_in(MALLORY)
            await pt.list_activities(team.id)

        with pytest.raises(PermissionDenied):
            run_async(scenario())
