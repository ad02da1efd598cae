"""Pydantic schemas for membership operations."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from orgroster.models.enums import OrganizationRole


class Actor(BaseModel):
    """Verified identity of the caller, supplied by the identity provider.

    The email is trusted as the invitation-matching key.
    """

    id: UUID = Field(..., description="External user identifier")
    email: EmailStr = Field(..., description="Verified email address")

    model_config = ConfigDict(frozen=True)

    @property
    def normalized_email(self) -> str:
        return str(self.email).strip().lower()


class ChangeRoleRequest(BaseModel):
    """Input for changing a member's role."""

    role: OrganizationRole = Field(..., description="New role for the member")


class MemberResponse(BaseModel):
    """Membership details."""

    id: UUID = Field(..., description="Membership identifier")
    organization_id: UUID = Field(..., description="Organization ID")
    user_id: UUID = Field(..., description="External user identifier")
    user_email: str = Field(..., description="Member email at join time")
    role: OrganizationRole = Field(..., description="Member role")
    joined_at: datetime = Field(..., description="Join timestamp")

    model_config = ConfigDict(from_attributes=True)


class OwnershipTransferResponse(BaseModel):
    """Role assignment after a completed ownership transfer."""

    organization_id: UUID
    previous_owner_member_id: UUID
    new_owner_member_id: UUID
    previous_owner_role: OrganizationRole = OrganizationRole.ADMIN
