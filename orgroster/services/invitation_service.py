"""Invitation service for organization invitation management.

Handles invitation creation, acceptance (by id or token), decline,
cancellation, listing and expiry.
- Secure random tokens using secrets.token_urlsafe(32)
- SHA-256 hash storage
- 7-day expiry (configurable)
- One pending invitation per (organization, email)
- Accepted invitations never revert
"""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.core.config import get_settings
from orgroster.core.errors import (
    ConflictError,
    CriticalError,
    ExpiredError,
    NotAuthorizedError,
    NotFoundError,
)
from orgroster.core.invitation_workflow import (
    compute_expiry,
    generate_token,
    has_lapsed,
    hash_token,
    is_valid_transition,
)
from orgroster.core.permissions import (
    INVITE_REQUIRES_ADMIN,
    can_cancel_invitation,
    can_invite,
    can_invite_role,
)
from orgroster.core.structured_logging import log_json
from orgroster.models.base import as_utc, utcnow
from orgroster.models.enums import AuditAction, InvitationStatus, OrganizationRole
from orgroster.models.invitation import Invitation
from orgroster.models.membership import Membership
from orgroster.models.organization import Organization
from orgroster.schemas.invitation import AcceptInvitationResponse, InvitationResponse
from orgroster.schemas.membership import Actor
from orgroster.services.audit_service import AuditService
from orgroster.services.membership_service import MembershipService

logger = logging.getLogger(__name__)

INVITATION_NOT_FOUND = "Invitation not found"
INVITATION_EXPIRED = "This invitation has expired"
INVITATION_USED = "This invitation has already been used"
EMAIL_MISMATCH = "This invitation was sent to a different email address"


class InvitationService:
    """Service for managing organization invitations."""

    def __init__(self, db: AsyncSession, expiry_days: int | None = None):
        """Initialize invitation service.

        Args:
            db: Database session
            expiry_days: Override for the configured invitation lifetime
        """
        self.db = db
        self.audit_service = AuditService(db)
        self.members = MembershipService(db)
        self.expiry_days = expiry_days or get_settings().invitation_expiry_days

    async def create_invitation(
        self,
        org_id: UUID,
        inviter_id: UUID,
        email: str,
        role: OrganizationRole,
    ) -> tuple[Invitation, str]:
        """Create a new invitation.

        Generates secure token, stores hash in database, returns plaintext
        token for the invitation email. A pending invitation for the same
        email that has already lapsed is expired in place first.

        Args:
            org_id: Organization to invite into
            inviter_id: Member creating the invitation
            email: Email address to invite (normalized)
            role: Role to assign on acceptance

        Returns:
            Tuple of (Invitation instance, plaintext token)

        Raises:
            NotAuthorizedError: if the inviter may not invite with this role
            ConflictError: if the email is a member or already invited
        """
        email = email.strip().lower()
        inviter = await self.members.require_member(org_id, inviter_id)

        decision = can_invite_role(inviter.role, role)
        if not decision:
            raise NotAuthorizedError(decision.reason)

        if await self.members.get_membership_by_email(org_id, email):
            raise ConflictError(
                "User is already a member of this organization",
                {"email": email},
            )

        now = utcnow()
        existing = await self._get_pending_invitation(org_id, email)
        if existing is not None:
            if not has_lapsed(existing.expires_at, now):
                raise ConflictError(
                    "There is already a pending invitation for this email",
                    {"email": email, "invitation_id": str(existing.id)},
                )
            await self._expire(existing, AuditAction.INVITATION_EXPIRE, user_id=None)

        token = generate_token()
        invitation = Invitation(
            organization_id=org_id,
            inviter_id=inviter_id,
            invitee_email=email,
            role=role,
            status=InvitationStatus.PENDING,
            token_hash=hash_token(token),
            created_at=now,
            expires_at=compute_expiry(now, self.expiry_days),
        )

        # Concurrent invite for the same email loses on the partial unique index
        try:
            async with self.db.begin_nested():
                self.db.add(invitation)
                await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "There is already a pending invitation for this email",
                {"email": email},
            ) from exc

        await self.audit_service.log_invitation(
            org_id=org_id,
            invitation_id=invitation.id,
            action=AuditAction.INVITATION_CREATE,
            user_id=inviter_id,
            diff_json={
                "email": email,
                "role": role.value,
                "expires_at": as_utc(invitation.expires_at).isoformat()
            }
        )

        return invitation, token

    async def accept_by_id(self, invitation_id: UUID, actor: Actor) -> AcceptInvitationResponse:
        """Accept an invitation addressed to the actor's email.

        Raises:
            NotFoundError: if no such invitation for this email
            ConflictError: if the invitation was used and the actor is not a member
            ExpiredError: if the invitation is expired or has lapsed
            CriticalError: if the invitation could not be flagged as accepted
        """
        invitation = await self.db.get(Invitation, invitation_id)
        if invitation is None or invitation.invitee_email != actor.normalized_email:
            raise NotFoundError(INVITATION_NOT_FOUND, {"invitation_id": str(invitation_id)})

        return await self._accept(invitation, actor)

    async def accept_by_token(self, token: str, actor: Actor) -> AcceptInvitationResponse:
        """Accept an invitation by the plaintext token from its accept link.

        Raises:
            NotFoundError: if the token matches no invitation
            NotAuthorizedError: if the invitation was sent to another email
            ConflictError, ExpiredError, CriticalError: as for accept_by_id
        """
        result = await self.db.execute(
            select(Invitation).where(Invitation.token_hash == hash_token(token))
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError("Invalid invitation token")

        if invitation.invitee_email != actor.normalized_email:
            raise NotAuthorizedError(EMAIL_MISMATCH, {"invitation_id": str(invitation.id)})

        return await self._accept(invitation, actor)

    async def decline(self, invitation_id: UUID, actor: Actor) -> Invitation:
        """Decline a pending invitation addressed to the actor.

        The invitation ends in the shared `expired` terminal state.
        """
        invitation = await self._get_pending_for_email(invitation_id, actor.normalized_email)
        await self._expire(invitation, AuditAction.INVITATION_DECLINE, user_id=actor.id)
        return invitation

    async def cancel(self, org_id: UUID, invitation_id: UUID, actor_id: UUID) -> Invitation:
        """Cancel a pending invitation of an organization.

        Allowed for the original inviter and for owners/admins.

        Raises:
            NotFoundError: if the organization or pending invitation is missing
            NotAuthorizedError: if the actor is not a member or may not cancel
        """
        actor = await self.members.require_member(org_id, actor_id)

        result = await self.db.execute(
            select(Invitation).where(
                and_(
                    Invitation.id == invitation_id,
                    Invitation.organization_id == org_id,
                    Invitation.status == InvitationStatus.PENDING
                )
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError(INVITATION_NOT_FOUND, {"invitation_id": str(invitation_id)})

        decision = can_cancel_invitation(actor_id, actor.role, invitation.inviter_id)
        if not decision:
            raise NotAuthorizedError(decision.reason)

        await self._expire(invitation, AuditAction.INVITATION_REVOKE, user_id=actor_id)
        return invitation

    async def list_pending_for_user(self, email: str) -> list[InvitationResponse]:
        """List invitations the user can still act on.

        Excludes lapsed invitations, organizations the user already belongs
        to, and pending invitations that predate an accepted invitation for
        the same organization.
        """
        email = email.strip().lower()
        now = utcnow()
        result = await self.db.execute(
            select(Invitation, Organization.name)
            .join(Organization, Organization.id == Invitation.organization_id)
            .where(
                and_(
                    Invitation.invitee_email == email,
                    Invitation.status == InvitationStatus.PENDING,
                    Invitation.expires_at > now
                )
            )
            .order_by(Invitation.created_at.desc())
        )
        rows = result.all()
        if not rows:
            return []

        org_ids = {invitation.organization_id for invitation, _ in rows}
        member_result = await self.db.execute(
            select(Membership.organization_id).where(
                and_(
                    Membership.user_email == email,
                    Membership.organization_id.in_(org_ids)
                )
            )
        )
        member_orgs = set(member_result.scalars().all())

        accepted_result = await self.db.execute(
            select(Invitation.organization_id, Invitation.created_at).where(
                and_(
                    Invitation.invitee_email == email,
                    Invitation.status == InvitationStatus.ACCEPTED,
                    Invitation.organization_id.in_(org_ids)
                )
            )
        )
        latest_accepted: dict[UUID, datetime] = {}
        for org_id, created_at in accepted_result.all():
            created_at = as_utc(created_at)
            if org_id not in latest_accepted or created_at > latest_accepted[org_id]:
                latest_accepted[org_id] = created_at

        pending = []
        for invitation, org_name in rows:
            if invitation.organization_id in member_orgs:
                continue
            accepted_at = latest_accepted.get(invitation.organization_id)
            if accepted_at is not None and accepted_at >= as_utc(invitation.created_at):
                continue
            pending.append(self._to_response(invitation, org_name))
        return pending

    async def list_for_organization(self, org_id: UUID, actor_id: UUID) -> list[InvitationResponse]:
        """List an organization's live invitations (owners and admins only)."""
        actor = await self.members.require_member(org_id, actor_id)
        if not can_invite(actor.role):
            raise NotAuthorizedError(INVITE_REQUIRES_ADMIN)

        result = await self.db.execute(
            select(Invitation, Organization.name)
            .join(Organization, Organization.id == Invitation.organization_id)
            .where(
                and_(
                    Invitation.organization_id == org_id,
                    Invitation.status == InvitationStatus.PENDING,
                    Invitation.expires_at > utcnow()
                )
            )
            .order_by(Invitation.created_at.desc())
        )
        return [self._to_response(invitation, name) for invitation, name in result.all()]

    async def expire_stale(self, now: datetime | None = None) -> int:
        """Flip every pending invitation past its expiry to `expired`.

        Returns:
            Number of invitations expired
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Invitation).where(
                and_(
                    Invitation.status == InvitationStatus.PENDING,
                    Invitation.expires_at <= now
                )
            )
        )
        stale = list(result.scalars().all())
        for invitation in stale:
            await self._expire(invitation, AuditAction.INVITATION_EXPIRE, user_id=None)
        return len(stale)

    async def _accept(self, invitation: Invitation, actor: Actor) -> AcceptInvitationResponse:
        org_id = invitation.organization_id
        email = actor.normalized_email

        if invitation.status == InvitationStatus.ACCEPTED:
            membership = await self.members.get_membership_for_user(org_id, actor.id)
            if membership is None:
                raise ConflictError(INVITATION_USED, {"invitation_id": str(invitation.id)})
            return AcceptInvitationResponse(
                organization_id=org_id,
                membership_id=membership.id,
                already_member=True,
            )

        if invitation.status == InvitationStatus.EXPIRED:
            raise ExpiredError(INVITATION_EXPIRED, {"invitation_id": str(invitation.id)})

        if has_lapsed(invitation.expires_at, utcnow()):
            await self._expire(invitation, AuditAction.INVITATION_EXPIRE, user_id=None)
            raise ExpiredError(INVITATION_EXPIRED, {"invitation_id": str(invitation.id)})

        membership = await self.members.get_membership_for_user(org_id, actor.id)
        already_member = membership is not None
        if membership is None:
            try:
                membership = await self.members.add_member(
                    org_id, actor.id, email, invitation.role
                )
            except ConflictError:
                # Lost a race with a concurrent accept; same as already a member
                membership = await self.members.get_membership_for_user(org_id, actor.id)
                if membership is None:
                    raise
                already_member = True

        await self._mark_accepted(invitation, actor)
        swept = await self._sweep_pending(org_id, email, exclude_id=invitation.id)

        await self.audit_service.log_invitation(
            org_id=org_id,
            invitation_id=invitation.id,
            action=AuditAction.INVITATION_ACCEPT,
            user_id=actor.id,
            diff_json={
                "email": email,
                "role": invitation.role.value,
                "membership_id": str(membership.id),
                "already_member": already_member,
                "swept": swept,
            }
        )

        return AcceptInvitationResponse(
            organization_id=org_id,
            membership_id=membership.id,
            already_member=already_member,
        )

    async def _mark_accepted(self, invitation: Invitation, actor: Actor) -> None:
        """Flag the accepted invitation; failure leaves a membership without its invitation."""
        details = {
            "invitation_id": str(invitation.id),
            "organization_id": str(invitation.organization_id),
            "user_id": str(actor.id),
            "email": actor.normalized_email,
        }
        try:
            result = await self.db.execute(
                update(Invitation)
                .where(
                    and_(
                        Invitation.id == invitation.id,
                        Invitation.status.in_(
                            [InvitationStatus.PENDING, InvitationStatus.ACCEPTED]
                        )
                    )
                )
                .values(status=InvitationStatus.ACCEPTED)
                .returning(Invitation.id)
                .execution_options(synchronize_session="fetch")
            )
            flagged = len(result.scalars().all())
        except SQLAlchemyError as exc:
            log_json(logger, logging.CRITICAL, "invitation_flag_failed", exc_info=exc, **details)
            raise CriticalError(
                "Failed to mark invitation as accepted. Please contact support.", details
            ) from exc

        if flagged != 1:
            log_json(logger, logging.CRITICAL, "invitation_flag_failed", flagged=flagged, **details)
            raise CriticalError(
                "Failed to mark invitation as accepted. Please contact support.", details
            )

    async def _sweep_pending(self, org_id: UUID, email: str, exclude_id: UUID) -> int:
        """Mark other pending invitations for (org, email) accepted; failure is non-fatal."""
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    update(Invitation)
                    .where(
                        and_(
                            Invitation.organization_id == org_id,
                            Invitation.invitee_email == email,
                            Invitation.status == InvitationStatus.PENDING,
                            Invitation.id != exclude_id
                        )
                    )
                    .values(status=InvitationStatus.ACCEPTED)
                    .returning(Invitation.id)
                    .execution_options(synchronize_session="fetch")
                )
                swept = len(result.scalars().all())
        except SQLAlchemyError as exc:
            log_json(
                logger,
                logging.WARNING,
                "invitation_sweep_failed",
                exc_info=exc,
                organization_id=str(org_id),
                email=email,
            )
            return 0
        return swept

    async def _expire(
        self,
        invitation: Invitation,
        action: AuditAction,
        user_id: UUID | None,
    ) -> None:
        if not is_valid_transition(invitation.status, InvitationStatus.EXPIRED):
            raise ConflictError(
                f"Cannot expire an invitation in status {invitation.status.value}",
                {"invitation_id": str(invitation.id)},
            )

        invitation.status = InvitationStatus.EXPIRED
        await self.db.flush()

        await self.audit_service.log_invitation(
            org_id=invitation.organization_id,
            invitation_id=invitation.id,
            action=action,
            user_id=user_id,
            diff_json={"email": invitation.invitee_email, "status": InvitationStatus.EXPIRED.value}
        )

    async def _get_pending_invitation(self, org_id: UUID, email: str) -> Invitation | None:
        """Get the pending invitation for (organization, email), lapsed or not."""
        result = await self.db.execute(
            select(Invitation).where(
                Invitation.invitee_email == email,
                Invitation.organization_id == org_id,
                Invitation.status == InvitationStatus.PENDING
            )
        )
        return result.scalars().first()

    async def _get_pending_for_email(self, invitation_id: UUID, email: str) -> Invitation:
        result = await self.db.execute(
            select(Invitation).where(
                and_(
                    Invitation.id == invitation_id,
                    Invitation.invitee_email == email,
                    Invitation.status == InvitationStatus.PENDING
                )
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFoundError(INVITATION_NOT_FOUND, {"invitation_id": str(invitation_id)})
        return invitation

    @staticmethod
    def _to_response(invitation: Invitation, organization_name: str | None) -> InvitationResponse:
        response = InvitationResponse.model_validate(invitation)
        response.organization_name = organization_name
        return response
