"""Invitation model."""
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy import Enum as SQLEnum

from orgroster.models.base import BaseModel
from orgroster.models.enums import InvitationStatus, OrganizationRole


class Invitation(BaseModel):
    """Invitation entity for joining an organization by email.

    Invitations are created by owners/admins, carry a single-use token
    (stored as a SHA-256 hash), expire after `invitation_expiry_days` and end in either
    `accepted` or `expired`. An accepted invitation never reverts.
    """

    __tablename__ = "invitations"

    organization_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    inviter_id = Column(
        Uuid(as_uuid=True),
        nullable=False
    )
    invitee_email = Column(
        String(255),
        nullable=False
    )
    role = Column(
        SQLEnum(
            OrganizationRole,
            name="organization_role",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False
    )
    status = Column(
        SQLEnum(
            InvitationStatus,
            name="invitation_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=InvitationStatus.PENDING
    )
    token_hash = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True
    )

    __table_args__ = (
        Index("idx_invitations_org_email_status", "organization_id", "invitee_email", "status"),
        # At most one live invitation per (organization, email)
        Index(
            "uq_invitations_pending_email",
            "organization_id",
            "invitee_email",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email={self.invitee_email}, status={self.status})>"
