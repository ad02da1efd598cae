"""Organization model."""
from sqlalchemy import CheckConstraint, Column, DateTime, String, Text

from orgroster.models.base import BaseModel, utcnow


class Organization(BaseModel):
    """Organization entity representing a tenant.

    An organization owns its memberships and invitations; deleting it
    cascades to both.
    """

    __tablename__ = "organizations"

    name = Column(
        String(255),
        nullable=False,
        index=True
    )
    description = Column(
        Text,
        nullable=True
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "LENGTH(name) > 0",
            name="organization_name_not_empty"
        ),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name})>"
