"""Enumerations for organization roles, invitation status and audit actions."""

from enum import Enum


class OrganizationRole(str, Enum):
    """Organization role enumeration with a strict total order.

    Hierarchy (higher can do everything lower can do):
    1. OWNER (exactly one per organization, full control)
    2. ADMIN (invites and manages users/viewers)
    3. USER (standard member)
    4. VIEWER (read-only)
    """

    OWNER = "owner"
    ADMIN = "admin"
    USER = "user"
    VIEWER = "viewer"

    @classmethod
    def rank(cls, role: "OrganizationRole") -> int:
        """Get numeric hierarchy level for role comparison.

        Args:
            role: OrganizationRole to get level for

        Returns:
            Integer level (higher = more permissions)
        """
        levels = {
            cls.VIEWER: 1,
            cls.USER: 2,
            cls.ADMIN: 3,
            cls.OWNER: 4,
        }
        return levels[role]

    def at_least(self, required_role: "OrganizationRole") -> bool:
        """Check if this role ranks at or above another role.

        Args:
            required_role: Minimum role required

        Returns:
            True if this role has sufficient permissions
        """
        return self.rank(self) >= self.rank(required_role)


# Roles an invitation may grant; ownership only moves through a transfer.
INVITABLE_ROLES = frozenset({OrganizationRole.ADMIN, OrganizationRole.USER, OrganizationRole.VIEWER})


class InvitationStatus(str, Enum):
    """Invitation lifecycle status.

    `expired` is shared by time-based lapse, decline and cancellation;
    the audit trail records which one happened.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class AuditAction(str, Enum):
    """Audit action enumeration for tracking membership administration."""

    # Organization
    ORG_CREATE = "organization.create"
    ORG_UPDATE = "organization.update"
    ORG_DELETE = "organization.delete"

    # Membership
    MEMBER_ROLE_CHANGE = "member.role_change"
    MEMBER_REMOVE = "member.remove"
    MEMBER_LEAVE = "member.leave"
    OWNERSHIP_TRANSFER = "ownership.transfer"

    # Invitation
    INVITATION_CREATE = "invitation.create"
    INVITATION_ACCEPT = "invitation.accept"
    INVITATION_DECLINE = "invitation.decline"
    INVITATION_EXPIRE = "invitation.expire"
    INVITATION_REVOKE = "invitation.revoke"
