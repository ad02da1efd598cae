"""Create membership tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

ROLES = ('owner', 'admin', 'user', 'viewer')
STATUSES = ('pending', 'accepted', 'expired')
AUDIT_ACTIONS = (
    'organization.create', 'organization.update', 'organization.delete',
    'member.role_change', 'member.remove', 'member.leave',
    'ownership.transfer',
    'invitation.create', 'invitation.accept', 'invitation.decline',
    'invitation.expire', 'invitation.revoke',
)


def upgrade() -> None:
    """Create organization, membership, invitation and audit tables."""
    organization_role = postgresql.ENUM(*ROLES, name='organization_role')
    invitation_status = postgresql.ENUM(*STATUSES, name='invitation_status')
    audit_action = postgresql.ENUM(*AUDIT_ACTIONS, name='audit_action')
    organization_role.create(op.get_bind(), checkfirst=True)
    invitation_status.create(op.get_bind(), checkfirst=True)
    audit_action.create(op.get_bind(), checkfirst=True)

    # Create organizations table
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.CheckConstraint('LENGTH(name) > 0', name='organization_name_not_empty')
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'])

    # Create memberships table
    op.create_table(
        'memberships',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('organization_id', sa.Uuid(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('role', postgresql.ENUM(*ROLES, name='organization_role', create_type=False), nullable=False, server_default='viewer'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_memberships_org_user'),
    )
    op.create_index('ix_memberships_organization_id', 'memberships', ['organization_id'])
    op.create_index('ix_memberships_user_id', 'memberships', ['user_id'])
    op.create_index('idx_memberships_org_email', 'memberships', ['organization_id', 'user_email'])
    # Single owner per organization
    op.create_index(
        'uq_memberships_single_owner',
        'memberships',
        ['organization_id'],
        unique=True,
        postgresql_where=sa.text("role = 'owner'"),
    )

    # Create invitations table
    op.create_table(
        'invitations',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('organization_id', sa.Uuid(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('inviter_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('invitee_email', sa.String(255), nullable=False),
        sa.Column('role', postgresql.ENUM(*ROLES, name='organization_role', create_type=False), nullable=False),
        sa.Column('status', postgresql.ENUM(*STATUSES, name='invitation_status', create_type=False), nullable=False, server_default='pending'),
        sa.Column('token_hash', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_invitations_token_hash', 'invitations', ['token_hash'], unique=True)
    op.create_index('ix_invitations_expires_at', 'invitations', ['expires_at'])
    op.create_index('idx_invitations_org_email_status', 'invitations', ['organization_id', 'invitee_email', 'status'])
    op.create_index(
        'uq_invitations_pending_email',
        'invitations',
        ['organization_id', 'invitee_email'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    # Create audit_events table; no FK so the trail outlives deleted organizations
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('org_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('action', postgresql.ENUM(*AUDIT_ACTIONS, name='audit_action', create_type=False), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('diff_json', postgresql.JSONB, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_audit_events_org_id', 'audit_events', ['org_id'])
    op.create_index('ix_audit_events_user_id', 'audit_events', ['user_id'])
    op.create_index('idx_audit_events_entity', 'audit_events', ['entity_type', 'entity_id'])
    op.create_index('idx_audit_events_created_at', 'audit_events', ['created_at'])

    # Create trigger to prevent UPDATE/DELETE on audit_events
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'Audit events cannot be modified or deleted';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER prevent_audit_update
        BEFORE UPDATE ON audit_events
        FOR EACH ROW EXECUTE FUNCTION prevent_audit_modification();
    """)
    op.execute("""
        CREATE TRIGGER prevent_audit_delete
        BEFORE DELETE ON audit_events
        FOR EACH ROW EXECUTE FUNCTION prevent_audit_modification();
    """)


def downgrade() -> None:
    """Drop membership tables."""
    # Drop triggers first
    op.execute('DROP TRIGGER IF EXISTS prevent_audit_delete ON audit_events')
    op.execute('DROP TRIGGER IF EXISTS prevent_audit_update ON audit_events')
    op.execute('DROP FUNCTION IF EXISTS prevent_audit_modification()')

    # Drop tables
    op.drop_table('audit_events')
    op.drop_table('invitations')
    op.drop_table('memberships')
    op.drop_table('organizations')

    # Drop enum types
    op.execute('DROP TYPE IF EXISTS audit_action')
    op.execute('DROP TYPE IF EXISTS invitation_status')
    op.execute('DROP TYPE IF EXISTS organization_role')
