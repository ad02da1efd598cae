"""Unit tests for the permission evaluator."""

import itertools
from uuid import uuid4

import pytest

from orgroster.core import permissions
from orgroster.core.permissions import (
    can_cancel_invitation,
    can_change_role,
    can_delete_organization,
    can_invite,
    can_invite_role,
    can_remove_member,
    can_transfer_ownership,
    can_update_organization,
    can_view_organization,
)
from orgroster.models.enums import OrganizationRole

OWNER = OrganizationRole.OWNER
ADMIN = OrganizationRole.ADMIN
USER = OrganizationRole.USER
VIEWER = OrganizationRole.VIEWER
ALL_ROLES = list(OrganizationRole)


class TestInvite:
    """Unit tests for invitation permissions."""

    def test_only_owner_and_admin_can_invite(self):
        assert can_invite(OWNER)
        assert can_invite(ADMIN)
        assert not can_invite(USER)
        assert not can_invite(VIEWER)
        assert not can_invite(None)

    @pytest.mark.parametrize("invited", [ADMIN, USER, VIEWER])
    def test_owner_can_invite_any_non_owner_role(self, invited):
        assert can_invite_role(OWNER, invited).allowed

    def test_owner_cannot_invite_owner(self):
        decision = can_invite_role(OWNER, OWNER)
        assert not decision.allowed
        assert decision.reason == permissions.OWNER_NOT_INVITABLE

    def test_admin_can_invite_user_and_viewer_only(self):
        assert can_invite_role(ADMIN, USER)
        assert can_invite_role(ADMIN, VIEWER)
        assert can_invite_role(ADMIN, ADMIN).reason == permissions.ADMIN_CANNOT_INVITE_ADMIN
        assert not can_invite_role(ADMIN, OWNER)

    @pytest.mark.parametrize("actor", [USER, VIEWER, None])
    def test_members_below_admin_cannot_invite(self, actor):
        decision = can_invite_role(actor, VIEWER)
        assert not decision
        assert decision.reason == permissions.INVITE_REQUIRES_ADMIN


class TestChangeRole:
    """Unit tests for can_change_role."""

    @pytest.mark.parametrize(
        "target,new_role",
        list(itertools.product([OWNER, ADMIN], ALL_ROLES)),
    )
    def test_admin_can_never_touch_owner_or_admin(self, target, new_role):
        decision = can_change_role(ADMIN, target, new_role)
        assert not decision.allowed
        assert decision.reason == permissions.ADMIN_CANNOT_MODIFY

    @pytest.mark.parametrize(
        "target,new_role",
        list(itertools.product([USER, VIEWER], [OWNER, ADMIN])),
    )
    def test_admin_can_never_assign_owner_or_admin(self, target, new_role):
        decision = can_change_role(ADMIN, target, new_role)
        assert not decision.allowed
        assert decision.reason == "Admins cannot assign owner or admin roles"

    @pytest.mark.parametrize(
        "target,new_role",
        list(itertools.product([USER, VIEWER], [USER, VIEWER])),
    )
    def test_admin_manages_users_and_viewers(self, target, new_role):
        assert can_change_role(ADMIN, target, new_role).allowed

    @pytest.mark.parametrize(
        "target,new_role",
        list(itertools.product([ADMIN, USER, VIEWER], [ADMIN, USER, VIEWER])),
    )
    def test_owner_can_change_non_owners(self, target, new_role):
        assert can_change_role(OWNER, target, new_role).allowed

    @pytest.mark.parametrize("actor", ALL_ROLES)
    def test_assigning_owner_is_always_denied(self, actor):
        for target in ALL_ROLES:
            assert not can_change_role(actor, target, OWNER).allowed

    def test_owner_gets_transfer_hint_when_assigning_owner(self):
        assert can_change_role(OWNER, ADMIN, OWNER).reason == permissions.USE_TRANSFER

    def test_owner_role_is_locked(self):
        decision = can_change_role(OWNER, OWNER, ADMIN)
        assert not decision
        assert decision.reason == permissions.OWNER_ROLE_LOCKED

    @pytest.mark.parametrize("actor", [USER, VIEWER])
    def test_users_and_viewers_are_denied(self, actor):
        for target, new_role in itertools.product(ALL_ROLES, ALL_ROLES):
            decision = can_change_role(actor, target, new_role)
            assert not decision
            assert decision.reason == permissions.CHANGE_ROLE_DENIED

    def test_non_member_actor_and_target(self):
        assert can_change_role(None, USER, VIEWER).reason == permissions.NOT_A_MEMBER
        assert can_change_role(OWNER, None, VIEWER).reason == permissions.TARGET_NOT_A_MEMBER


class TestRemoveMember:
    """Unit tests for can_remove_member."""

    def test_owner_cannot_leave(self):
        actor_id = uuid4()
        decision = can_remove_member(actor_id, OWNER, actor_id, OWNER)
        assert not decision
        assert decision.reason == permissions.OWNER_MUST_TRANSFER
        assert "transfer ownership before leaving" in decision.reason.lower()

    @pytest.mark.parametrize("role", [ADMIN, USER, VIEWER])
    def test_non_owners_can_leave(self, role):
        actor_id = uuid4()
        assert can_remove_member(actor_id, role, actor_id, role).allowed

    @pytest.mark.parametrize("target", [ADMIN, USER, VIEWER])
    def test_owner_removes_anyone_but_the_owner(self, target):
        assert can_remove_member(uuid4(), OWNER, uuid4(), target).allowed

    def test_owner_cannot_remove_another_owner(self):
        decision = can_remove_member(uuid4(), OWNER, uuid4(), OWNER)
        assert decision.reason == permissions.CANNOT_REMOVE_OWNER

    def test_admin_removes_users_and_viewers_only(self):
        assert can_remove_member(uuid4(), ADMIN, uuid4(), USER)
        assert can_remove_member(uuid4(), ADMIN, uuid4(), VIEWER)
        assert can_remove_member(uuid4(), ADMIN, uuid4(), ADMIN).reason == permissions.ADMIN_CANNOT_REMOVE
        assert not can_remove_member(uuid4(), ADMIN, uuid4(), OWNER)

    @pytest.mark.parametrize("actor", [USER, VIEWER])
    def test_users_and_viewers_cannot_remove_others(self, actor):
        decision = can_remove_member(uuid4(), actor, uuid4(), VIEWER)
        assert decision.reason == permissions.REMOVE_DENIED

    def test_non_member_cannot_remove(self):
        assert can_remove_member(uuid4(), None, uuid4(), VIEWER).reason == permissions.NOT_A_MEMBER


class TestOrganizationPermissions:
    """Unit tests for update/delete/view permissions."""

    def test_update_requires_owner_or_admin(self):
        assert can_update_organization(OWNER)
        assert can_update_organization(ADMIN)
        assert not can_update_organization(USER)
        assert not can_update_organization(VIEWER)
        assert not can_update_organization(None)

    def test_delete_requires_owner(self):
        assert can_delete_organization(OWNER)
        for role in (ADMIN, USER, VIEWER, None):
            assert not can_delete_organization(role)

    def test_any_member_can_view(self):
        for role in ALL_ROLES:
            assert can_view_organization(role)
        assert not can_view_organization(None)


class TestTransferOwnership:
    """Unit tests for can_transfer_ownership."""

    def test_owner_can_transfer_to_member(self):
        assert can_transfer_ownership(OWNER, uuid4(), uuid4(), ADMIN).allowed

    @pytest.mark.parametrize("actor", [ADMIN, USER, VIEWER, None])
    def test_only_owner_can_transfer(self, actor):
        decision = can_transfer_ownership(actor, uuid4(), uuid4(), USER)
        assert decision.reason == permissions.TRANSFER_REQUIRES_OWNER

    def test_cannot_transfer_to_self(self):
        actor_id = uuid4()
        decision = can_transfer_ownership(OWNER, actor_id, actor_id, OWNER)
        assert decision.reason == permissions.TRANSFER_TO_SELF

    def test_target_must_be_member(self):
        decision = can_transfer_ownership(OWNER, uuid4(), uuid4(), None)
        assert decision.reason == permissions.TARGET_NOT_A_MEMBER


class TestCancelInvitation:
    """Unit tests for can_cancel_invitation."""

    def test_inviter_can_cancel_own_invitation(self):
        inviter_id = uuid4()
        assert can_cancel_invitation(inviter_id, USER, inviter_id).allowed

    @pytest.mark.parametrize("role", [OWNER, ADMIN])
    def test_owner_and_admin_can_cancel_any(self, role):
        assert can_cancel_invitation(uuid4(), role, uuid4()).allowed

    def test_other_members_cannot_cancel(self):
        decision = can_cancel_invitation(uuid4(), VIEWER, uuid4())
        assert decision.reason == permissions.CANCEL_DENIED

    def test_non_member_cannot_cancel(self):
        inviter_id = uuid4()
        assert can_cancel_invitation(inviter_id, None, inviter_id).reason == permissions.NOT_A_MEMBER
