"""Membership service for role snapshots, role changes and removals."""
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.core.errors import ConflictError, NotAuthorizedError, NotFoundError
from orgroster.core.permissions import (
    NOT_A_MEMBER,
    RoleSnapshot,
    can_change_role,
    can_remove_member,
)
from orgroster.models.base import as_utc
from orgroster.models.enums import AuditAction, OrganizationRole
from orgroster.models.membership import Membership
from orgroster.models.organization import Organization
from orgroster.services.audit_service import AuditService


def _snapshot(membership: Membership) -> RoleSnapshot:
    return RoleSnapshot(
        membership_id=membership.id,
        organization_id=membership.organization_id,
        user_id=membership.user_id,
        role=membership.role,
    )


class MembershipService:
    """Service for membership reads and mutations."""

    def __init__(self, db: AsyncSession):
        """Initialize membership service.

        Args:
            db: Database session
        """
        self.db = db
        self.audit_service = AuditService(db)

    async def get_role_snapshot(self, org_id: UUID, user_id: UUID) -> RoleSnapshot | None:
        """Read a user's current role in an organization.

        Args:
            org_id: Organization ID
            user_id: External user ID

        Returns:
            RoleSnapshot, or None if the user is not a member
        """
        membership = await self.get_membership_for_user(org_id, user_id)
        if membership is None:
            return None
        return _snapshot(membership)

    async def require_member(self, org_id: UUID, user_id: UUID) -> RoleSnapshot:
        """Snapshot the actor's role, failing if the organization or membership is missing.

        Raises:
            NotFoundError: if the organization does not exist
            NotAuthorizedError: if the user is not a member
        """
        exists = await self.db.scalar(select(Organization.id).where(Organization.id == org_id))
        if exists is None:
            raise NotFoundError("Organization not found", {"organization_id": str(org_id)})

        snapshot = await self.get_role_snapshot(org_id, user_id)
        if snapshot is None:
            raise NotAuthorizedError(NOT_A_MEMBER)
        return snapshot

    async def get_membership_for_user(self, org_id: UUID, user_id: UUID) -> Membership | None:
        result = await self.db.execute(
            select(Membership).where(
                and_(
                    Membership.organization_id == org_id,
                    Membership.user_id == user_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_membership_by_email(self, org_id: UUID, email: str) -> Membership | None:
        result = await self.db.execute(
            select(Membership).where(
                Membership.organization_id == org_id,
                Membership.user_email == email.strip().lower(),
            )
        )
        return result.scalars().first()

    async def get_member(self, org_id: UUID, member_id: UUID) -> Membership:
        """Get a membership by its ID within an organization.

        Raises:
            NotFoundError: if no such member in the organization
        """
        result = await self.db.execute(
            select(Membership).where(
                and_(
                    Membership.id == member_id,
                    Membership.organization_id == org_id
                )
            )
        )
        membership = result.scalar_one_or_none()
        if not membership:
            raise NotFoundError("Member not found", {"member_id": str(member_id)})
        return membership

    async def list_members(self, org_id: UUID) -> list[Membership]:
        """List members, owner first, then by role rank and join time."""
        result = await self.db.execute(
            select(Membership).where(Membership.organization_id == org_id)
        )
        members = list(result.scalars().all())
        return sorted(
            members,
            key=lambda m: (-OrganizationRole.rank(m.role), as_utc(m.joined_at)),
        )

    async def count_owners(self, org_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Membership.id)).where(
                and_(
                    Membership.organization_id == org_id,
                    Membership.role == OrganizationRole.OWNER,
                )
            )
        )
        return result.scalar_one()

    async def add_member(
        self,
        org_id: UUID,
        user_id: UUID,
        email: str,
        role: OrganizationRole,
    ) -> Membership:
        """Create a membership.

        Runs in a savepoint so a uniqueness violation leaves the enclosing
        transaction usable.

        Raises:
            ConflictError: if the user is already a member (or, for
                role=owner, if the organization already has an owner)
        """
        membership = Membership(
            organization_id=org_id,
            user_id=user_id,
            user_email=email.strip().lower(),
            role=role,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(membership)
                await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "User is already a member of this organization",
                {"organization_id": str(org_id), "user_id": str(user_id)},
            ) from exc
        return membership

    async def change_role(
        self,
        org_id: UUID,
        actor_id: UUID,
        member_id: UUID,
        new_role: OrganizationRole,
    ) -> Membership:
        """Change a member's role.

        Args:
            org_id: Organization ID
            actor_id: User performing the change
            member_id: Membership to change
            new_role: Role to assign (never owner; see OwnershipTransferService)

        Returns:
            Updated Membership

        Raises:
            NotAuthorizedError: if the evaluator denies the change
            NotFoundError: if the organization or member is missing
        """
        actor = await self.require_member(org_id, actor_id)
        member = await self.get_member(org_id, member_id)
        old_role = member.role

        decision = can_change_role(actor.role, old_role, new_role)
        if not decision:
            raise NotAuthorizedError(decision.reason, {"member_id": str(member_id)})

        member.role = new_role
        await self.db.flush()

        await self.audit_service.log_membership(
            org_id=org_id,
            membership_id=member.id,
            action=AuditAction.MEMBER_ROLE_CHANGE,
            user_id=actor_id,
            diff_json={
                "user_id": str(member.user_id),
                "old_role": old_role.value,
                "new_role": new_role.value,
            },
        )
        return member

    async def remove_member(
        self,
        org_id: UUID,
        actor_id: UUID,
        member_id: UUID,
    ) -> Membership:
        """Remove a member, or let a member leave when they remove themselves.

        Invitations the member accepted are left untouched and stay
        `accepted`.

        Returns:
            The deleted Membership (detached)

        Raises:
            NotAuthorizedError: if the evaluator denies the removal
            NotFoundError: if the organization or member is missing
        """
        actor = await self.require_member(org_id, actor_id)
        member = await self.get_member(org_id, member_id)

        decision = can_remove_member(actor_id, actor.role, member.user_id, member.role)
        if not decision:
            raise NotAuthorizedError(decision.reason, {"member_id": str(member_id)})

        leaving = member.user_id == actor_id
        await self.audit_service.log_membership(
            org_id=org_id,
            membership_id=member.id,
            action=AuditAction.MEMBER_LEAVE if leaving else AuditAction.MEMBER_REMOVE,
            user_id=actor_id,
            diff_json={
                "user_id": str(member.user_id),
                "email": member.user_email,
                "role": member.role.value,
            },
        )

        await self.db.delete(member)
        await self.db.flush()
        return member
