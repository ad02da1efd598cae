"""Ownership transfer between two members of an organization.

The swap is ordered demote-then-promote so that the partial unique index
on memberships(organization_id) WHERE role = 'owner' is never violated,
and each step runs in its own SAVEPOINT so a failed promotion can be
compensated inside the same transaction.
"""
import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from orgroster.core.errors import ConflictError, CriticalError, NotAuthorizedError
from orgroster.core.permissions import can_transfer_ownership
from orgroster.core.structured_logging import log_json
from orgroster.models.enums import AuditAction, OrganizationRole
from orgroster.models.membership import Membership
from orgroster.schemas.membership import OwnershipTransferResponse
from orgroster.services.audit_service import AuditService
from orgroster.services.membership_service import MembershipService

logger = logging.getLogger(__name__)


class OwnershipTransferService:
    """Service for transferring organization ownership."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit_service = AuditService(db)
        self.members = MembershipService(db)

    async def transfer(
        self,
        org_id: UUID,
        actor_id: UUID,
        new_owner_member_id: UUID,
    ) -> OwnershipTransferResponse:
        """Make another member the owner; the current owner becomes admin.

        Args:
            org_id: Organization ID
            actor_id: Current owner's user ID
            new_owner_member_id: Membership ID of the new owner

        Returns:
            OwnershipTransferResponse describing the new assignment

        Raises:
            NotFoundError: if the organization or target member is missing
            NotAuthorizedError: if the actor is not the owner or targets themselves
            ConflictError: if promotion failed and the owner was restored
            CriticalError: if the owner could not be restored, or the
                organization does not end with exactly the new owner
        """
        current = await self.members.require_member(org_id, actor_id)
        target = await self.members.get_member(org_id, new_owner_member_id)

        decision = can_transfer_ownership(current.role, actor_id, target.user_id, target.role)
        if not decision:
            raise NotAuthorizedError(decision.reason, {"member_id": str(new_owner_member_id)})

        context = {
            "organization_id": str(org_id),
            "previous_owner_member_id": str(current.membership_id),
            "new_owner_member_id": str(target.id),
        }
        previous_target_role = target.role

        # 1. Demote the current owner. A failure here leaves nothing to undo.
        await self._set_role(current.membership_id, OrganizationRole.ADMIN)

        # 2. Promote the target, compensating on failure.
        try:
            await self._set_role(target.id, OrganizationRole.OWNER)
        except SQLAlchemyError as exc:
            log_json(logger, logging.ERROR, "ownership_promote_failed", exc_info=exc, **context)
            await self._restore_owner(current.membership_id, context)
            raise ConflictError(
                "Failed to transfer ownership. The previous owner was restored; please try again.",
                context,
            ) from exc

        await self._verify_single_owner(org_id, target.id, context)

        await self.audit_service.log_membership(
            org_id=org_id,
            membership_id=target.id,
            action=AuditAction.OWNERSHIP_TRANSFER,
            user_id=actor_id,
            diff_json={
                "previous_owner_member_id": str(current.membership_id),
                "new_owner_member_id": str(target.id),
                "new_owner_previous_role": previous_target_role.value,
            },
        )

        return OwnershipTransferResponse(
            organization_id=org_id,
            previous_owner_member_id=current.membership_id,
            new_owner_member_id=target.id,
        )

    async def _set_role(self, membership_id: UUID, role: OrganizationRole) -> None:
        """Write one membership's role inside a savepoint.

        Raises:
            SQLAlchemyError: on constraint violation, or StaleDataError if
                the membership no longer exists
        """
        async with self.db.begin_nested():
            result = await self.db.execute(
                update(Membership)
                .where(Membership.id == membership_id)
                .values(role=role)
                .returning(Membership.id)
                .execution_options(synchronize_session="fetch")
            )
            if len(result.scalars().all()) != 1:
                raise StaleDataError(f"Membership {membership_id} no longer exists")

    async def _restore_owner(self, membership_id: UUID, context: dict) -> None:
        try:
            await self._set_role(membership_id, OrganizationRole.OWNER)
        except SQLAlchemyError as exc:
            log_json(logger, logging.CRITICAL, "ownership_restore_failed", exc_info=exc, **context)
            raise CriticalError(
                "Ownership transfer failed and restoring the previous owner also failed. "
                "The transfer was not applied; please contact support.",
                context,
            ) from exc

    async def _verify_single_owner(self, org_id: UUID, new_owner_id: UUID, context: dict) -> None:
        owners = await self.members.count_owners(org_id)
        membership = await self.db.get(Membership, new_owner_id, populate_existing=True)
        if owners == 1 and membership is not None and membership.role == OrganizationRole.OWNER:
            return

        log_json(logger, logging.CRITICAL, "ownership_postcondition_failed", owners=owners, **context)
        raise CriticalError(
            "Ownership transfer left the organization in an inconsistent state. "
            "Please contact support.",
            {**context, "owner_count": owners},
        )

