"""Seed script for development data.

Creates:
- Organization "Acme Dev" owned by SEED_OWNER_EMAIL
- A pending admin invitation for SEED_INVITE_EMAIL (optional)

Can be run multiple times safely (skips if exists).
"""
import os
import sys
from pathlib import Path
import asyncio
from uuid import NAMESPACE_URL, uuid5

# Add the project root to path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from sqlalchemy import select
from orgroster.core.database import get_db
from orgroster.models.membership import Membership
from orgroster.models.organization import Organization
from orgroster.models.enums import OrganizationRole
from orgroster.schemas.membership import Actor
from orgroster.services.membership_manager import MembershipManager
from orgroster.services.notification_service import LoggingNotifier, NotificationDispatcher


async def seed_data():
    """Seed development data."""
    print("Starting database seeding...")

    org_name = os.environ.get("SEED_ORG_NAME", "Acme Dev")
    owner_email = os.environ.get("SEED_OWNER_EMAIL", "owner@acme.local")
    invite_email = os.environ.get("SEED_INVITE_EMAIL")
    # Stable identity so reruns find the same owner
    owner = Actor(id=uuid5(NAMESPACE_URL, f"mailto:{owner_email}"), email=owner_email)

    dispatcher = NotificationDispatcher(LoggingNotifier())

    # Get database session
    async for db in get_db():
        manager = MembershipManager(db, dispatcher=dispatcher)

        # Check if organization already exists for this owner
        result = await db.execute(
            select(Organization)
            .join(Membership, Membership.organization_id == Organization.id)
            .where(
                Organization.name == org_name,
                Membership.user_id == owner.id,
                Membership.role == OrganizationRole.OWNER
            )
        )
        existing_org = result.scalar_one_or_none()

        if existing_org:
            print(f"✓ Organization '{org_name}' already exists (ID: {existing_org.id})")
            org_id = existing_org.id
        else:
            created = await manager.create_organization(owner, org_name, "Development organization")
            if not created.success:
                print(f"✗ Failed to create organization: {created.error.message}")
                return
            org_id = created.data.id
            print(f"✓ Created organization '{org_name}' (ID: {org_id})")

        if invite_email:
            invited = await manager.invite(org_id, owner, invite_email, OrganizationRole.ADMIN.value)
            if invited.success:
                print(f"✓ Invited '{invite_email}' as admin")
                print(f"  Accept link: {invited.data.accept_url}")
            else:
                print(f"✓ Skipped invitation: {invited.error.message}")

    await dispatcher.drain()

    print("\n✓ Database seeding completed successfully!")
    print(f"\nOwner: {owner_email} (user ID: {owner.id})")


if __name__ == "__main__":
    asyncio.run(seed_data())
