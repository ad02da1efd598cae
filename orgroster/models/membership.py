"""Membership model."""
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid, text
from sqlalchemy import Enum as SQLEnum

from orgroster.models.base import BaseModel, utcnow
from orgroster.models.enums import OrganizationRole


class Membership(BaseModel):
    """Membership of an external user identity in an organization.

    The storage layer enforces the two invariants the permission rules rely
    on: one membership per (organization, user), and at most one owner per
    organization (partial unique index on role = 'owner').
    """

    __tablename__ = "memberships"

    organization_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True
    )
    # Verified identity email captured at join time
    user_email = Column(
        String(255),
        nullable=False
    )
    role = Column(
        SQLEnum(
            OrganizationRole,
            name="organization_role",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=OrganizationRole.VIEWER
    )
    joined_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_memberships_org_user"),
        Index(
            "uq_memberships_single_owner",
            "organization_id",
            unique=True,
            postgresql_where=text("role = 'owner'"),
            sqlite_where=text("role = 'owner'"),
        ),
        Index("idx_memberships_org_email", "organization_id", "user_email"),
    )

    def __repr__(self) -> str:
        return f"<Membership(id={self.id}, user_id={self.user_id}, role={self.role})>"
