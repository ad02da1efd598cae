"""AuditEvent model."""

from sqlalchemy import JSON, Column, String, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB

from orgroster.models.base import BaseModel
from orgroster.models.enums import AuditAction


class AuditEvent(BaseModel):
    """Append-only audit trail for membership administration.

    Rows reference organizations by id only so that the trail of an
    organization survives its deletion.
    """

    __tablename__ = "audit_events"

    org_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    action = Column(
        SQLEnum(
            AuditAction,
            name="audit_action",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Uuid(as_uuid=True), nullable=False)
    diff_json = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditEvent(id={self.id}, action={self.action}, entity_type={self.entity_type})>"
