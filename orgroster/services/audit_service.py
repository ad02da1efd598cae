"""Audit trail for membership administration.

Rows are append-only (enforced by database triggers in production) and
carry the acting user, the affected entity and a small JSON diff.
"""
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.models.audit_event import AuditEvent
from orgroster.models.enums import AuditAction

# Entity recorded for each action family ("member.remove" -> "membership")
_ENTITY_BY_PREFIX = {
    "organization": "organization",
    "member": "membership",
    "ownership": "membership",
    "invitation": "invitation",
}


def entity_type_for(action: AuditAction) -> str:
    prefix = action.value.split(".", 1)[0]
    return _ENTITY_BY_PREFIX[prefix]


class AuditService:
    """Writes and reads audit events inside the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        org_id: UUID,
        action: AuditAction,
        entity_id: UUID,
        user_id: Optional[UUID] = None,
        diff_json: Optional[dict[str, Any]] = None,
    ) -> AuditEvent:
        """Record one event.

        Args:
            org_id: Organization the event belongs to (kept after deletion)
            action: What happened; also determines the entity type
            entity_id: Organization, membership or invitation ID
            user_id: Acting user, or None for system jobs such as the expiry sweep
            diff_json: Event details (before/after values, emails, roles)

        Returns:
            The flushed AuditEvent
        """
        event = AuditEvent(
            org_id=org_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type_for(action),
            entity_id=entity_id,
            diff_json=diff_json,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def log_invitation(
        self,
        org_id: UUID,
        invitation_id: UUID,
        action: AuditAction,
        user_id: Optional[UUID] = None,
        diff_json: Optional[dict[str, Any]] = None,
    ) -> AuditEvent:
        return await self.log(org_id, action, invitation_id, user_id, diff_json)

    async def log_membership(
        self,
        org_id: UUID,
        membership_id: UUID,
        action: AuditAction,
        user_id: Optional[UUID] = None,
        diff_json: Optional[dict[str, Any]] = None,
    ) -> AuditEvent:
        return await self.log(org_id, action, membership_id, user_id, diff_json)

    async def log_organization(
        self,
        org_id: UUID,
        action: AuditAction,
        user_id: Optional[UUID] = None,
        diff: Optional[dict[str, Any]] = None,
    ) -> AuditEvent:
        return await self.log(org_id, action, org_id, user_id, diff)

    async def list_for_organization(
        self,
        org_id: UUID,
        action: Optional[AuditAction] = None,
        entity_id: Optional[UUID] = None,
    ) -> list[AuditEvent]:
        """List an organization's events oldest first, optionally filtered."""
        query = select(AuditEvent).where(AuditEvent.org_id == org_id)
        if action is not None:
            query = query.where(AuditEvent.action == action)
        if entity_id is not None:
            query = query.where(AuditEvent.entity_id == entity_id)

        result = await self.db.execute(query.order_by(AuditEvent.created_at, AuditEvent.id))
        return list(result.scalars().all())
