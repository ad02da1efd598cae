"""Public entry point for organization membership operations.

Every operation runs as one unit of work on the manager's session:
snapshot, decide, write, commit. Typed service errors and unexpected
database errors are turned into failed `ActionResult`s; invitation emails
are dispatched only after the invitation has been committed.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgroster.core.config import Settings, get_settings
from orgroster.core.errors import (
    CriticalError,
    MembershipError,
    NotAuthenticatedError,
    ValidationFailedError,
)
from orgroster.core.invitation_workflow import build_accept_url, parse_accept_url
from orgroster.core.metrics import observe_operation
from orgroster.core.request_context import correlation_context
from orgroster.core.structured_logging import log_json
from orgroster.schemas.errors import ActionResult
from orgroster.schemas.invitation import (
    AcceptInvitationResponse,
    InvitationCreated,
    InvitationEmail,
    InvitationResponse,
    InviteRequest,
)
from orgroster.schemas.membership import (
    Actor,
    ChangeRoleRequest,
    MemberResponse,
    OwnershipTransferResponse,
)
from orgroster.schemas.organization import (
    CreateOrganizationRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
    OrganizationWithRole,
)
from orgroster.services.invitation_service import InvitationService
from orgroster.services.membership_service import MembershipService
from orgroster.services.notification_service import NotificationDispatcher, get_notifier
from orgroster.services.organization_service import OrganizationService
from orgroster.services.ownership_service import OwnershipTransferService

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

INTERNAL_ERROR_MESSAGE = "The operation could not be completed. Please try again."


def _validate(model: type[M], **data: Any) -> M:
    """Validate input, raising ValidationFailedError with per-field messages."""
    try:
        return model(**data)
    except ValidationError as exc:
        details = {
            ".".join(str(part) for part in error["loc"]) or "input": error["msg"]
            for error in exc.errors()
        }
        raise ValidationFailedError("Invalid input", details) from exc


def _require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise NotAuthenticatedError("Not authenticated")
    return actor


class MembershipManager:
    """Orchestrates membership operations over a database session."""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the manager.

        Args:
            db: Database session; committed or rolled back per operation
            dispatcher: Notification dispatcher (defaults to the configured notifier)
            settings: Application settings
        """
        self.db = db
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or NotificationDispatcher(get_notifier(self.settings))
        self.organizations = OrganizationService(db)
        self.members = MembershipService(db)
        self.invitations = InvitationService(db, expiry_days=self.settings.invitation_expiry_days)
        self.ownership = OwnershipTransferService(db)
        self._outbox: list[InvitationEmail] = []

    async def _execute(
        self,
        operation: str,
        work: Callable[[], Awaitable[T]],
        *,
        actor: Optional[Actor] = None,
        organization_id: Optional[UUID] = None,
    ) -> ActionResult:
        """Run one operation as a unit of work and wrap its outcome."""
        with correlation_context():
            context = {
                "operation": operation,
                "organization_id": str(organization_id) if organization_id else None,
                "actor_id": str(actor.id) if actor else None,
            }
            outbox: list[InvitationEmail] = []
            try:
                try:
                    data = await work()
                except MembershipError as exc:
                    # An expired invitation keeps its status flip; everything else is undone
                    if exc.persist_changes:
                        await self.db.commit()
                    else:
                        await self.db.rollback()
                    return self._failed(operation, exc, context)
                await self.db.commit()
                outbox = self._outbox
            except SQLAlchemyError as exc:
                await self.db.rollback()
                log_json(
                    logger,
                    logging.ERROR,
                    "membership_operation",
                    exc_info=exc,
                    outcome="internal_error",
                    **context,
                )
                observe_operation(operation=operation, outcome="internal_error")
                return ActionResult.fail("internal_error", INTERNAL_ERROR_MESSAGE)
            except Exception:
                await self.db.rollback()
                raise
            finally:
                # Emails queued by a failed operation must never leak into the next one
                self._outbox = []

            log_json(logger, logging.INFO, "membership_operation", outcome="success", **context)
            observe_operation(operation=operation, outcome="success")

            for email in outbox:
                self.dispatcher.dispatch(email)

            return ActionResult.ok(data)

    def _failed(self, operation: str, exc: MembershipError, context: dict) -> ActionResult:
        if isinstance(exc, CriticalError):
            log_json(
                logger,
                logging.CRITICAL,
                "membership_operation",
                exc_info=exc,
                outcome=exc.code,
                message=exc.message,
                details=exc.details,
                **context,
            )
        else:
            log_json(
                logger,
                logging.INFO,
                "membership_operation",
                outcome=exc.code,
                message=exc.message,
                **context,
            )
        observe_operation(operation=operation, outcome=exc.code)
        return ActionResult.fail(exc.code, exc.message, exc.details)

    # Organizations

    async def create_organization(
        self,
        actor: Optional[Actor],
        name: str,
        description: Optional[str] = None,
    ) -> ActionResult:
        async def work() -> OrganizationResponse:
            current = _require_actor(actor)
            request = _validate(CreateOrganizationRequest, name=name, description=description)
            organization = await self.organizations.create(
                current, request.name, request.description
            )
            return OrganizationResponse.model_validate(organization)

        return await self._execute("create_organization", work, actor=actor)

    async def get_organization(self, org_id: UUID, actor: Optional[Actor]) -> ActionResult:
        async def work() -> OrganizationWithRole:
            current = _require_actor(actor)
            return await self.organizations.get_for_member(org_id, current.id)

        return await self._execute("get_organization", work, actor=actor, organization_id=org_id)

    async def list_organizations(self, actor: Optional[Actor]) -> ActionResult:
        async def work() -> list[OrganizationWithRole]:
            current = _require_actor(actor)
            return await self.organizations.list_for_user(current.id)

        return await self._execute("list_organizations", work, actor=actor)

    async def update_organization(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        name: str,
        description: Optional[str] = None,
    ) -> ActionResult:
        async def work() -> OrganizationResponse:
            current = _require_actor(actor)
            request = _validate(OrganizationUpdateRequest, name=name, description=description)
            organization = await self.organizations.update(
                org_id, current.id, request.name, request.description
            )
            return OrganizationResponse.model_validate(organization)

        return await self._execute("update_organization", work, actor=actor, organization_id=org_id)

    async def delete_organization(self, org_id: UUID, actor: Optional[Actor]) -> ActionResult:
        async def work() -> None:
            current = _require_actor(actor)
            await self.organizations.delete(org_id, current.id)

        return await self._execute("delete_organization", work, actor=actor, organization_id=org_id)

    # Members

    async def list_members(self, org_id: UUID, actor: Optional[Actor]) -> ActionResult:
        async def work() -> list[MemberResponse]:
            current = _require_actor(actor)
            await self.members.require_member(org_id, current.id)
            members = await self.members.list_members(org_id)
            return [MemberResponse.model_validate(member) for member in members]

        return await self._execute("list_members", work, actor=actor, organization_id=org_id)

    async def change_role(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        member_id: UUID,
        new_role: str,
    ) -> ActionResult:
        async def work() -> MemberResponse:
            current = _require_actor(actor)
            request = _validate(ChangeRoleRequest, role=new_role)
            member = await self.members.change_role(org_id, current.id, member_id, request.role)
            return MemberResponse.model_validate(member)

        return await self._execute("change_role", work, actor=actor, organization_id=org_id)

    async def remove_member(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        member_id: UUID,
    ) -> ActionResult:
        async def work() -> MemberResponse:
            current = _require_actor(actor)
            member = await self.members.remove_member(org_id, current.id, member_id)
            return MemberResponse.model_validate(member)

        return await self._execute("remove_member", work, actor=actor, organization_id=org_id)

    async def leave_organization(self, org_id: UUID, actor: Optional[Actor]) -> ActionResult:
        async def work() -> MemberResponse:
            current = _require_actor(actor)
            snapshot = await self.members.require_member(org_id, current.id)
            member = await self.members.remove_member(org_id, current.id, snapshot.membership_id)
            return MemberResponse.model_validate(member)

        return await self._execute("leave_organization", work, actor=actor, organization_id=org_id)

    async def transfer_ownership(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        new_owner_member_id: UUID,
    ) -> ActionResult:
        async def work() -> OwnershipTransferResponse:
            current = _require_actor(actor)
            return await self.ownership.transfer(org_id, current.id, new_owner_member_id)

        return await self._execute("transfer_ownership", work, actor=actor, organization_id=org_id)

    # Invitations

    async def invite(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        email: str,
        role: str,
    ) -> ActionResult:
        """Invite an email address; the invitation email is sent after commit."""

        async def work() -> InvitationCreated:
            current = _require_actor(actor)
            request = _validate(InviteRequest, email=email, role=role)
            invitation, token = await self.invitations.create_invitation(
                org_id, current.id, str(request.email), request.role
            )
            organization = await self.organizations.get_by_id(org_id)
            accept_url = build_accept_url(
                self.settings.site_url, self.settings.invitation_accept_path, token
            )
            self._outbox.append(
                InvitationEmail(
                    to=invitation.invitee_email,
                    organization_name=organization.name,
                    accept_url=accept_url,
                    role=invitation.role,
                    inviter_email=current.normalized_email,
                    expires_at=invitation.expires_at,
                )
            )
            return InvitationCreated(
                id=invitation.id,
                organization_id=org_id,
                invitee_email=invitation.invitee_email,
                role=invitation.role,
                token=token,
                accept_url=accept_url,
                expires_at=invitation.expires_at,
            )

        return await self._execute("invite", work, actor=actor, organization_id=org_id)

    async def accept_invitation(
        self,
        actor: Optional[Actor],
        invitation_id: Optional[UUID] = None,
        token: Optional[str] = None,
    ) -> ActionResult:
        """Accept an invitation identified by exactly one of id or token."""

        async def work() -> AcceptInvitationResponse:
            current = _require_actor(actor)
            if (invitation_id is None) == (token is None):
                raise ValidationFailedError("Provide either an invitation id or a token")
            if token is not None:
                return await self.invitations.accept_by_token(token, current)
            return await self.invitations.accept_by_id(invitation_id, current)

        return await self._execute("accept_invitation", work, actor=actor)

    async def accept_invitation_link(self, actor: Optional[Actor], url: str) -> ActionResult:
        """Accept the invitation referenced by an acceptance link."""

        async def work() -> AcceptInvitationResponse:
            current = _require_actor(actor)
            token = parse_accept_url(url)
            if token is None:
                raise ValidationFailedError("Invitation link is missing its token", {"url": url})
            return await self.invitations.accept_by_token(token, current)

        return await self._execute("accept_invitation", work, actor=actor)

    async def decline_invitation(self, actor: Optional[Actor], invitation_id: UUID) -> ActionResult:
        async def work() -> InvitationResponse:
            current = _require_actor(actor)
            invitation = await self.invitations.decline(invitation_id, current)
            return InvitationResponse.model_validate(invitation)

        return await self._execute("decline_invitation", work, actor=actor)

    async def cancel_invitation(
        self,
        org_id: UUID,
        actor: Optional[Actor],
        invitation_id: UUID,
    ) -> ActionResult:
        async def work() -> InvitationResponse:
            current = _require_actor(actor)
            invitation = await self.invitations.cancel(org_id, invitation_id, current.id)
            return InvitationResponse.model_validate(invitation)

        return await self._execute("cancel_invitation", work, actor=actor, organization_id=org_id)

    async def list_pending_invitations(self, actor: Optional[Actor]) -> ActionResult:
        async def work() -> list[InvitationResponse]:
            current = _require_actor(actor)
            return await self.invitations.list_pending_for_user(current.normalized_email)

        return await self._execute("list_pending_invitations", work, actor=actor)

    async def list_organization_invitations(
        self,
        org_id: UUID,
        actor: Optional[Actor],
    ) -> ActionResult:
        async def work() -> list[InvitationResponse]:
            current = _require_actor(actor)
            return await self.invitations.list_for_organization(org_id, current.id)

        return await self._execute(
            "list_organization_invitations", work, actor=actor, organization_id=org_id
        )

    async def expire_stale_invitations(self) -> ActionResult:
        """System operation: expire every lapsed pending invitation."""

        async def work() -> int:
            return await self.invitations.expire_stale()

        return await self._execute("expire_stale_invitations", work)

