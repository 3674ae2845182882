"""Tests for the permission engine (pure, no store)."""

from __future__ import annotations

import pytest

from promptteams.core.errors import InvalidArgument, InvalidOperation, PermissionDenied
from promptteams.core.models import Role
from promptteams.core.permissions import (
    Action,
    check_invitation_role,
    check_member_removal,
    check_role_change,
    evaluate,
    require,
)


class TestEvaluate:
    """Role matrix decisions."""

    @pytest.mark.parametrize("role", [Role.OWNER, Role.ADMIN, Role.MEMBER])
    @pytest.mark.parametrize(
        "action",
        [Action.READ_TEAM, Action.CREATE_RESOURCE, Action.RATE_RESOURCE, Action.COMMENT],
    )
    def test_any_member_actions(self, role, action) -> None:
        assert evaluate("u1", role, action) is True

    @pytest.mark.parametrize("action", list(Action))
    def test_non_member_denied_everything(self, action) -> None:
        assert evaluate("u1", None, action, creator_id="u1") is False

    def test_managers_invite_and_remove(self) -> None:
        for action in (Action.INVITE_MEMBER, Action.REMOVE_MEMBER):
            assert evaluate("u1", Role.OWNER, action) is True
            assert evaluate("u1", Role.ADMIN, action) is True
            assert evaluate("u1", Role.MEMBER, action) is False

    def test_owner_only_actions(self) -> None:
        for action in (Action.CHANGE_ROLE, Action.DELETE_TEAM):
            assert evaluate("u1", Role.OWNER, action) is True
            assert evaluate("u1", Role.ADMIN, action) is False
            assert evaluate("u1", Role.MEMBER, action) is False

    def test_member_edits_own_resource_only(self) -> None:
        assert evaluate("u1", Role.MEMBER, Action.EDIT_RESOURCE, creator_id="u1") is True
        assert evaluate("u1", Role.MEMBER, Action.DELETE_RESOURCE, creator_id="u1") is True
        assert evaluate("u1", Role.MEMBER, Action.EDIT_RESOURCE, creator_id="u2") is False
        assert evaluate("u1", Role.MEMBER, Action.EDIT_RESOURCE) is False

    def test_admin_edits_any_resource(self) -> None:
        assert evaluate("u1", Role.ADMIN, Action.EDIT_RESOURCE, creator_id="u2") is True
        assert evaluate("u1", Role.ADMIN, Action.DELETE_RESOURCE, creator_id=None) is True


class TestRequire:
    def test_denial_raises_with_detail(self) -> None:
        with pytest.raises(PermissionDenied) as exc_info:
            require("u1", Role.MEMBER, Action.DELETE_TEAM)
        err = exc_info.value
        assert err.code == "PERMISSION_DENIED"
        assert err.detail == {"action": "delete_team", "role": "member"}
        assert err.to_dict()["error"]["type"] == "PERMISSION_DENIED"

    def test_non_member_reported(self) -> None:
        with pytest.raises(PermissionDenied, match="non-member"):
            require("u1", None, Action.READ_TEAM)

    def test_allowed_returns_none(self) -> None:
        assert require("u1", Role.OWNER, Action.DELETE_TEAM) is None


class TestStructuralRules:
    def test_owner_cannot_be_removed(self) -> None:
        with pytest.raises(InvalidOperation):
            check_member_removal("admin", "owner", "owner")

    def test_cannot_remove_self(self) -> None:
        with pytest.raises(InvalidOperation):
            check_member_removal("admin", "owner", "admin")

    def test_removal_of_other_member_ok(self) -> None:
        check_member_removal("owner", "owner", "member")

    def test_owner_role_fixed(self) -> None:
        with pytest.raises(InvalidOperation):
            check_role_change("owner", "owner", Role.MEMBER)

    def test_ownership_cannot_be_granted(self) -> None:
        with pytest.raises(InvalidOperation):
            check_role_change("owner", "u2", Role.OWNER)

    def test_invitation_roles(self) -> None:
        check_invitation_role(Role.MEMBER)
        check_invitation_role(Role.ADMIN)
        with pytest.raises(InvalidArgument):
            check_invitation_role(Role.OWNER)
