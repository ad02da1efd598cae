"""Integration tests for role changes, removal and leaving."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.models.audit_event import AuditEvent
from orgroster.models.enums import AuditAction, InvitationStatus, OrganizationRole
from orgroster.models.invitation import Invitation
from orgroster.models.membership import Membership


@pytest.fixture()
def team(manager, make_actor, owner, org, join):
    """Populate Acme with one member of every non-owner role."""

    async def _team() -> dict:
        members = {"owner": (owner, None)}
        for role in ("admin", "user", "viewer"):
            actor = make_actor(f"{role}@acme.com")
            members[role] = (actor, await join(org.id, owner, actor, role))
        second_admin = make_actor("admin2@acme.com")
        members["admin2"] = (second_admin, await join(org.id, owner, second_admin, "admin"))
        owner_listing = await manager.list_members(org.id, owner)
        owner_member = next(m for m in owner_listing.data if m.role == OrganizationRole.OWNER)
        members["owner"] = (owner, owner_member.id)
        return members

    return _team


@pytest.mark.asyncio
class TestChangeRole:
    """Tests for change_role."""

    async def test_owner_promotes_user_to_admin(self, manager, db: AsyncSession, owner, org, team):
        members = await team()
        _, user_id = members["user"]

        result = await manager.change_role(org.id, owner, user_id, "admin")

        assert result.success
        assert result.data.role == OrganizationRole.ADMIN
        membership = await db.get(Membership, user_id)
        assert membership.role == OrganizationRole.ADMIN

        events = await db.execute(
            select(AuditEvent).where(
                AuditEvent.entity_id == user_id,
                AuditEvent.action == AuditAction.MEMBER_ROLE_CHANGE,
            )
        )
        event = events.scalar_one()
        assert event.diff_json["old_role"] == "user"
        assert event.diff_json["new_role"] == "admin"

    async def test_owner_demotes_admin(self, manager, owner, org, team):
        members = await team()
        _, admin_id = members["admin"]

        result = await manager.change_role(org.id, owner, admin_id, "viewer")

        assert result.data.role == OrganizationRole.VIEWER

    async def test_admin_cannot_grant_admin(self, manager, db: AsyncSession, org, team):
        members = await team()
        admin, _ = members["admin"]
        _, user_id = members["user"]

        result = await manager.change_role(org.id, admin, user_id, "admin")

        assert result.error.error == "not_authorized"
        assert result.error.message == "Admins cannot assign owner or admin roles"
        membership = await db.get(Membership, user_id)
        assert membership.role == OrganizationRole.USER

    async def test_admin_manages_users_and_viewers(self, manager, org, team):
        members = await team()
        admin, _ = members["admin"]
        _, viewer_id = members["viewer"]

        result = await manager.change_role(org.id, admin, viewer_id, "user")

        assert result.data.role == OrganizationRole.USER

    async def test_admin_cannot_modify_other_admin(self, manager, org, team):
        members = await team()
        admin, _ = members["admin"]
        _, other_admin_id = members["admin2"]

        result = await manager.change_role(org.id, admin, other_admin_id, "viewer")

        assert result.error.message == "Admins cannot modify owners or other admins"

    async def test_owner_role_cannot_be_assigned(self, manager, db: AsyncSession, owner, org, team):
        members = await team()
        _, admin_id = members["admin"]

        result = await manager.change_role(org.id, owner, admin_id, "owner")

        assert result.error.error == "not_authorized"
        assert "transfer ownership" in result.error.message
        owners = await db.execute(
            select(Membership).where(
                Membership.organization_id == org.id,
                Membership.role == OrganizationRole.OWNER,
            )
        )
        assert len(owners.scalars().all()) == 1

    async def test_owner_role_is_locked(self, manager, owner, org, team):
        members = await team()
        _, owner_member_id = members["owner"]

        result = await manager.change_role(org.id, owner, owner_member_id, "admin")

        assert result.error.error == "not_authorized"

    @pytest.mark.parametrize("role", ["user", "viewer"])
    async def test_users_and_viewers_cannot_change_roles(self, manager, org, team, role):
        members = await team()
        actor, _ = members[role]
        _, target_id = members["viewer" if role == "user" else "user"]

        result = await manager.change_role(org.id, actor, target_id, "admin")

        assert result.error.error == "not_authorized"

    async def test_unknown_role_is_rejected(self, manager, owner, org, team):
        members = await team()
        _, user_id = members["user"]

        result = await manager.change_role(org.id, owner, user_id, "root")

        assert result.error.error == "validation_error"

    async def test_member_from_other_organization_is_not_found(self, manager, owner, org, team):
        await team()
        globex = await manager.create_organization(owner, "Globex")
        listing = await manager.list_members(globex.data.id, owner)
        foreign_id = listing.data[0].id

        result = await manager.change_role(org.id, owner, foreign_id, "viewer")

        assert result.error.error == "not_found"

    async def test_non_member_actor(self, manager, make_actor, org, team):
        members = await team()
        _, user_id = members["user"]

        result = await manager.change_role(org.id, make_actor("stranger@acme.com"), user_id, "viewer")

        assert result.error.error == "not_authorized"
        assert result.error.message == "You are not a member of this organization"


@pytest.mark.asyncio
class TestRemoveMember:
    """Tests for remove_member and leave_organization."""

    async def test_owner_removes_admin(self, manager, db: AsyncSession, owner, org, team):
        members = await team()
        _, admin_id = members["admin"]

        result = await manager.remove_member(org.id, owner, admin_id)

        assert result.success
        assert result.data.id == admin_id
        assert await db.get(Membership, admin_id) is None

    async def test_admin_removes_viewer(self, manager, org, team):
        members = await team()
        admin, _ = members["admin"]
        _, viewer_id = members["viewer"]

        result = await manager.remove_member(org.id, admin, viewer_id)

        assert result.success

    async def test_admin_cannot_remove_admin_or_owner(self, manager, org, team):
        members = await team()
        admin, _ = members["admin"]
        _, other_admin_id = members["admin2"]
        _, owner_member_id = members["owner"]

        other_admin = await manager.remove_member(org.id, admin, other_admin_id)
        owner = await manager.remove_member(org.id, admin, owner_member_id)

        assert other_admin.error.message == "Admins cannot remove owners or other admins"
        assert owner.error.message == "Admins cannot remove owners or other admins"

    async def test_user_cannot_remove_others(self, manager, org, team):
        members = await team()
        user, _ = members["user"]
        _, viewer_id = members["viewer"]

        result = await manager.remove_member(org.id, user, viewer_id)

        assert result.error.message == "Insufficient permission to remove members"

    async def test_owner_cannot_leave(self, manager, owner, org, team):
        await team()

        result = await manager.leave_organization(org.id, owner)

        assert result.error.error == "not_authorized"
        assert result.error.message == "Owners must transfer ownership before leaving the organization"

    @pytest.mark.parametrize("role", ["admin", "user", "viewer"])
    async def test_members_can_leave(self, manager, db: AsyncSession, org, team, role):
        members = await team()
        actor, membership_id = members[role]

        result = await manager.leave_organization(org.id, actor)

        assert result.success
        assert await db.get(Membership, membership_id) is None
        actions = await db.execute(
            select(AuditEvent.action).where(AuditEvent.entity_id == membership_id)
        )
        assert AuditAction.MEMBER_LEAVE in actions.scalars().all()

    async def test_removal_is_audited_as_remove(self, manager, db: AsyncSession, owner, org, team):
        members = await team()
        _, user_id = members["user"]

        await manager.remove_member(org.id, owner, user_id)

        actions = await db.execute(
            select(AuditEvent.action).where(AuditEvent.entity_id == user_id)
        )
        assert AuditAction.MEMBER_REMOVE in actions.scalars().all()

    async def test_accepted_invitation_stays_accepted(self, manager, db: AsyncSession, owner, org, team):
        members = await team()
        _, user_id = members["user"]

        await manager.remove_member(org.id, owner, user_id)

        statuses = await db.execute(
            select(Invitation.status).where(Invitation.invitee_email == "user@acme.com")
        )
        assert statuses.scalars().all() == [InvitationStatus.ACCEPTED]

    async def test_removed_member_loses_access(self, manager, owner, org, team):
        members = await team()
        user, user_id = members["user"]
        await manager.remove_member(org.id, owner, user_id)

        result = await manager.list_members(org.id, user)

        assert result.error.error == "not_authorized"

    async def test_missing_member(self, manager, owner, org):
        result = await manager.remove_member(org.id, owner, uuid4())

        assert result.error.error == "not_found"
