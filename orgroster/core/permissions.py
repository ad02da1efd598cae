"""Permission evaluator for organization membership actions.

Every rule is a pure function over role snapshots fetched by the caller
immediately before evaluation. `None` as a role means "not a member".
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from orgroster.models.enums import INVITABLE_ROLES, OrganizationRole

OWNER = OrganizationRole.OWNER
ADMIN = OrganizationRole.ADMIN
MANAGED_BY_ADMIN = frozenset({OrganizationRole.USER, OrganizationRole.VIEWER})

NOT_A_MEMBER = "You are not a member of this organization"
TARGET_NOT_A_MEMBER = "Target user is not a member of this organization"
INVITE_REQUIRES_ADMIN = "Only owners and admins can invite members"
ADMIN_CANNOT_INVITE_ADMIN = "Admins cannot invite other admins. Only owners can invite admins."
OWNER_NOT_INVITABLE = "The owner role cannot be granted by invitation"
USE_TRANSFER = "Use transfer ownership to change a member to owner"
OWNER_ROLE_LOCKED = "Cannot change the owner's role; transfer ownership first"
ADMIN_CANNOT_MODIFY = "Admins cannot modify owners or other admins"
ADMIN_CANNOT_ASSIGN = "Admins cannot assign owner or admin roles"
CHANGE_ROLE_DENIED = "Insufficient permission to change member roles"
OWNER_MUST_TRANSFER = "Owners must transfer ownership before leaving the organization"
CANNOT_REMOVE_OWNER = "Cannot remove the owner. Transfer ownership first."
ADMIN_CANNOT_REMOVE = "Admins cannot remove owners or other admins"
REMOVE_DENIED = "Insufficient permission to remove members"
TRANSFER_REQUIRES_OWNER = "Only owners can transfer ownership"
TRANSFER_TO_SELF = "Cannot transfer ownership to yourself"
CANCEL_DENIED = "You don't have permission to cancel this invitation"
UPDATE_DENIED = "You don't have permission to update this organization"
DELETE_DENIED = "Only owners can delete organizations"


@dataclass(frozen=True)
class PermissionDecision:
    """Allow/deny outcome with a human-readable reason when denied."""

    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class RoleSnapshot:
    """A member's role as read from storage right before a decision."""

    membership_id: UUID
    organization_id: UUID
    user_id: UUID
    role: OrganizationRole


ALLOW = PermissionDecision(True)


def deny(reason: str) -> PermissionDecision:
    return PermissionDecision(False, reason)


def can_view_organization(actor_role: OrganizationRole | None) -> bool:
    """Any member may read organization details and its member list."""
    return actor_role is not None


def can_invite(actor_role: OrganizationRole | None) -> bool:
    """Only owners and admins can invite."""
    return actor_role in (OWNER, ADMIN)


def can_invite_role(
    actor_role: OrganizationRole | None, invited_role: OrganizationRole
) -> PermissionDecision:
    """Check whether the actor may grant `invited_role` through an invitation.

    Owners may invite admins, users and viewers; admins only users and
    viewers. Nobody can invite an owner.
    """
    if not can_invite(actor_role):
        return deny(INVITE_REQUIRES_ADMIN)
    if invited_role not in INVITABLE_ROLES:
        return deny(OWNER_NOT_INVITABLE)
    if actor_role == ADMIN and invited_role == ADMIN:
        return deny(ADMIN_CANNOT_INVITE_ADMIN)
    return ALLOW


def can_change_role(
    actor_role: OrganizationRole | None,
    target_role: OrganizationRole | None,
    new_role: OrganizationRole,
) -> PermissionDecision:
    """Check whether the actor may move a member from `target_role` to `new_role`.

    Ownership never changes here: assigning `owner` is always denied and
    the owner's own role is locked, so a role change can neither create a
    second owner nor leave the organization ownerless.
    """
    if actor_role is None:
        return deny(NOT_A_MEMBER)
    if target_role is None:
        return deny(TARGET_NOT_A_MEMBER)

    if actor_role == OWNER:
        if new_role == OWNER:
            return deny(USE_TRANSFER)
        if target_role == OWNER:
            return deny(OWNER_ROLE_LOCKED)
        return ALLOW

    if actor_role == ADMIN:
        if target_role not in MANAGED_BY_ADMIN:
            return deny(ADMIN_CANNOT_MODIFY)
        if new_role not in MANAGED_BY_ADMIN:
            return deny(ADMIN_CANNOT_ASSIGN)
        return ALLOW

    return deny(CHANGE_ROLE_DENIED)


def can_remove_member(
    actor_id: UUID,
    actor_role: OrganizationRole | None,
    target_id: UUID,
    target_role: OrganizationRole | None,
) -> PermissionDecision:
    """Check whether the actor may remove the target user from the organization.

    Self-removal is voluntary departure and is open to everyone except the
    owner, who must hand over ownership first.
    """
    if actor_role is None:
        return deny(NOT_A_MEMBER)

    if actor_id == target_id:
        if actor_role == OWNER:
            return deny(OWNER_MUST_TRANSFER)
        return ALLOW

    if target_role is None:
        return deny(TARGET_NOT_A_MEMBER)

    if actor_role == OWNER:
        if target_role == OWNER:
            return deny(CANNOT_REMOVE_OWNER)
        return ALLOW

    if actor_role == ADMIN:
        if target_role not in MANAGED_BY_ADMIN:
            return deny(ADMIN_CANNOT_REMOVE)
        return ALLOW

    return deny(REMOVE_DENIED)


def can_update_organization(actor_role: OrganizationRole | None) -> bool:
    return actor_role in (OWNER, ADMIN)


def can_delete_organization(actor_role: OrganizationRole | None) -> bool:
    return actor_role == OWNER


def can_transfer_ownership(
    actor_role: OrganizationRole | None,
    actor_id: UUID,
    target_id: UUID,
    target_role: OrganizationRole | None,
) -> PermissionDecision:
    """Only the owner may transfer, never to themselves, and only to a member."""
    if actor_role != OWNER:
        return deny(TRANSFER_REQUIRES_OWNER)
    if actor_id == target_id:
        return deny(TRANSFER_TO_SELF)
    if target_role is None:
        return deny(TARGET_NOT_A_MEMBER)
    return ALLOW


def can_cancel_invitation(
    actor_id: UUID,
    actor_role: OrganizationRole | None,
    inviter_id: UUID,
) -> PermissionDecision:
    """The original inviter, an admin or the owner may cancel a pending invitation."""
    if actor_role is None:
        return deny(NOT_A_MEMBER)
    if actor_role in (OWNER, ADMIN) or actor_id == inviter_id:
        return ALLOW
    return deny(CANCEL_DENIED)
