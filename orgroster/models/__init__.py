"""SQLAlchemy models."""

from orgroster.models.audit_event import AuditEvent
from orgroster.models.base import Base, BaseModel
from orgroster.models.enums import (
    INVITABLE_ROLES,
    AuditAction,
    InvitationStatus,
    OrganizationRole,
)
from orgroster.models.invitation import Invitation
from orgroster.models.membership import Membership
from orgroster.models.organization import Organization

__all__ = [
    "Base",
    "BaseModel",
    "INVITABLE_ROLES",
    "OrganizationRole",
    "InvitationStatus",
    "AuditAction",
    "Organization",
    "Membership",
    "Invitation",
    "AuditEvent",
]
