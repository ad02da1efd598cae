"""Organization service for creating, updating and deleting organizations."""
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.core.errors import NotAuthorizedError, NotFoundError
from orgroster.core.permissions import (
    DELETE_DENIED,
    UPDATE_DENIED,
    can_delete_organization,
    can_update_organization,
)
from orgroster.models.enums import AuditAction, OrganizationRole
from orgroster.models.invitation import Invitation
from orgroster.models.membership import Membership
from orgroster.models.organization import Organization
from orgroster.schemas.membership import Actor
from orgroster.schemas.organization import OrganizationWithRole
from orgroster.services.audit_service import AuditService
from orgroster.services.membership_service import MembershipService


class OrganizationService:
    """Service for creating and managing organizations."""

    def __init__(self, db: AsyncSession):
        """Initialize organization service.

        Args:
            db: Database session
        """
        self.db = db
        self.audit_service = AuditService(db)
        self.members = MembershipService(db)

    async def create(
        self,
        actor: Actor,
        name: str,
        description: Optional[str] = None
    ) -> Organization:
        """Create an organization owned by the actor.

        The organization and the owner membership are written in the same
        transaction.

        Args:
            actor: Creating user, who becomes the sole owner
            name: Organization name (validated)
            description: Optional description

        Returns:
            Created Organization instance
        """
        organization = Organization(name=name, description=description)
        self.db.add(organization)
        await self.db.flush()  # Flush to get org ID for the owner membership

        membership = await self.members.add_member(
            organization.id, actor.id, actor.normalized_email, OrganizationRole.OWNER
        )

        await self.audit_service.log_organization(
            org_id=organization.id,
            action=AuditAction.ORG_CREATE,
            user_id=actor.id,
            diff={"name": name, "owner_member_id": str(membership.id)}
        )

        return organization

    async def get_by_id(self, org_id: UUID) -> Organization:
        """Get organization by ID.

        Args:
            org_id: Organization ID

        Returns:
            Organization instance

        Raises:
            NotFoundError: if organization not found
        """
        result = await self.db.execute(
            select(Organization).where(Organization.id == org_id)
        )
        organization = result.scalar_one_or_none()

        if not organization:
            raise NotFoundError("Organization not found", {"organization_id": str(org_id)})

        return organization

    async def get_for_member(self, org_id: UUID, actor_id: UUID) -> OrganizationWithRole:
        """Get an organization as seen by one of its members."""
        snapshot = await self.members.require_member(org_id, actor_id)
        organization = await self.get_by_id(org_id)
        return OrganizationWithRole(
            id=organization.id,
            name=organization.name,
            description=organization.description,
            created_at=organization.created_at,
            updated_at=organization.updated_at,
            user_role=snapshot.role,
        )

    async def list_for_user(self, user_id: UUID) -> list[OrganizationWithRole]:
        """List the organizations a user belongs to, newest membership first."""
        result = await self.db.execute(
            select(Organization, Membership.role)
            .join(Membership, Membership.organization_id == Organization.id)
            .where(Membership.user_id == user_id)
            .order_by(Membership.joined_at.desc())
        )
        return [
            OrganizationWithRole(
                id=organization.id,
                name=organization.name,
                description=organization.description,
                created_at=organization.created_at,
                updated_at=organization.updated_at,
                user_role=role,
            )
            for organization, role in result.all()
        ]

    async def update(
        self,
        org_id: UUID,
        actor_id: UUID,
        name: str,
        description: Optional[str] = None
    ) -> Organization:
        """Update organization details.

        Args:
            org_id: Organization ID
            actor_id: ID of user performing update
            name: New organization name
            description: New description (None clears it)

        Returns:
            Updated Organization instance

        Raises:
            NotFoundError: if organization not found
            NotAuthorizedError: if the actor is not an owner or admin
        """
        snapshot = await self.members.require_member(org_id, actor_id)
        if not can_update_organization(snapshot.role):
            raise NotAuthorizedError(UPDATE_DENIED)

        organization = await self.get_by_id(org_id)

        # Store old values for audit diff
        old_values = {"name": organization.name, "description": organization.description}

        organization.name = name
        organization.description = description
        await self.db.flush()
        await self.db.refresh(organization)

        diff = {
            "before": old_values,
            "after": {"name": organization.name, "description": organization.description}
        }
        await self.audit_service.log_organization(
            org_id=organization.id,
            action=AuditAction.ORG_UPDATE,
            user_id=actor_id,
            diff=diff
        )

        return organization

    async def delete(self, org_id: UUID, actor_id: UUID) -> None:
        """Delete an organization with its memberships and invitations.

        Raises:
            NotFoundError: if organization not found
            NotAuthorizedError: if the actor is not the owner
        """
        snapshot = await self.members.require_member(org_id, actor_id)
        if not can_delete_organization(snapshot.role):
            raise NotAuthorizedError(DELETE_DENIED)

        organization = await self.get_by_id(org_id)
        name = organization.name

        # Children first; the foreign keys cascade as well
        await self.db.execute(delete(Invitation).where(Invitation.organization_id == org_id))
        await self.db.execute(delete(Membership).where(Membership.organization_id == org_id))
        await self.db.delete(organization)
        await self.db.flush()

        await self.audit_service.log_organization(
            org_id=org_id,
            action=AuditAction.ORG_DELETE,
            user_id=actor_id,
            diff={"name": name}
        )
