"""Pydantic schemas for organization operations."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orgroster.models.enums import OrganizationRole


class CreateOrganizationRequest(BaseModel):
    """Input for creating an organization.

    The creating actor becomes its sole owner.
    """

    name: str = Field(..., min_length=1, max_length=255, description="Organization display name")
    description: str | None = Field(
        None, max_length=1000, description="Optional free-text description"
    )

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        """Validate that name is not empty or whitespace only."""
        if not v or not v.strip():
            raise ValueError("Organization name cannot be empty")
        return v.strip()

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class OrganizationUpdateRequest(CreateOrganizationRequest):
    """Input for updating an organization's name and description."""


class OrganizationResponse(BaseModel):
    """Organization details."""

    id: UUID = Field(..., description="Organization unique identifier")
    name: str = Field(..., description="Organization display name")
    description: str | None = Field(None, description="Organization description")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last modification timestamp")

    model_config = ConfigDict(from_attributes=True)


class OrganizationWithRole(OrganizationResponse):
    """Organization as listed for a member, with that member's role."""

    user_role: OrganizationRole = Field(..., description="The listing actor's role")
