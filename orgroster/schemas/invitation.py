"""Pydantic schemas for invitation operations."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from orgroster.models.enums import INVITABLE_ROLES, InvitationStatus, OrganizationRole


class InviteRequest(BaseModel):
    """Input for creating an invitation."""

    email: EmailStr = Field(..., description="Email address of the user to invite")
    role: OrganizationRole = Field(..., description="Role to assign to the invited user")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("role")
    @classmethod
    def role_is_invitable(cls, v: OrganizationRole) -> OrganizationRole:
        if v not in INVITABLE_ROLES:
            raise ValueError("Role must be one of admin, user or viewer")
        return v


class InvitationCreated(BaseModel):
    """Result of invitation creation.

    Contains the plaintext token; it is not stored and cannot be recovered
    later.
    """

    id: UUID = Field(..., description="Invitation unique identifier")
    organization_id: UUID = Field(..., description="Organization ID")
    invitee_email: str = Field(..., description="Invitee email address")
    role: OrganizationRole = Field(..., description="Assigned role")
    token: str = Field(..., description="Invitation token (plaintext, for email)")
    accept_url: str = Field(..., description="Acceptance link carrying the token")
    expires_at: datetime = Field(..., description="Invitation expiry timestamp")


class InvitationResponse(BaseModel):
    """Invitation details (never includes the token)."""

    id: UUID
    organization_id: UUID
    organization_name: str | None = None
    inviter_id: UUID
    invitee_email: str
    role: OrganizationRole
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AcceptInvitationResponse(BaseModel):
    """Result of accepting an invitation."""

    organization_id: UUID = Field(..., description="Organization joined")
    membership_id: UUID = Field(..., description="Resulting membership")
    already_member: bool = Field(
        False, description="True when the actor was already a member and nothing was created"
    )


class InvitationEmail(BaseModel):
    """Payload handed to a notifier."""

    to: str
    organization_name: str
    accept_url: str
    role: OrganizationRole
    inviter_email: str | None = None
    expires_at: datetime | None = None
