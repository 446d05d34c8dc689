"""
Script to create a local superuser and an organization they administer.

    python -m app.scripts.create_local_admin --email admin@example.com --password secret123
"""

import argparse
import asyncio

from sqlmodel import select

from app.core.auth import hash_password
from app.core.database import get_session_context, init_db
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg


async def create_admin(email: str, password: str, name: str, org_name: str, create_tables: bool):
    if create_tables:
        await init_db()

    async with get_session_context() as session:
        # 1. User
        result = await session.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()
        if not user:
            user = User(
                name=name,
                email=email.lower(),
                password_hash=hash_password(password),
                is_superuser=True,
            )
            session.add(user)
            await session.flush()
            print(f"Created superuser: {email}")
        else:
            user.is_superuser = True
            session.add(user)
            print(f"User {email} already exists; marked as superuser.")

        # 2. Organization owned by the user
        result = await session.execute(
            select(Organization).where(
                Organization.owner_id == user.id, Organization.name == org_name
            )
        )
        org = result.scalar_one_or_none()
        if not org:
            org = Organization(name=org_name, owner_id=user.id, member_ids=[str(user.id)])
            session.add(org)
            await session.flush()
            print(f"Created organization '{org_name}' (invite slug {org.invite_slug}).")

        # 3. Admin membership
        membership = await session.get(UserOrg, (user.id, org.id))
        if not membership:
            session.add(UserOrg(user_id=user.id, org_id=org.id, role="admin"))
            print(f"Added {email} as admin of '{org_name}'.")

    print("Done.")


def run():
    parser = argparse.ArgumentParser(description="Create a local superuser.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument("--name", default="Local Admin", help="Display name")
    parser.add_argument("--org", default="Default Organization", help="Organization name")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create missing tables first"
    )

    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password, args.name, args.org, args.create_tables))


if __name__ == "__main__":
    run()
