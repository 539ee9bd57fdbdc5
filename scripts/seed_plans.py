#!/usr/bin/env python3
"""
Seed the plan catalog and, optionally, a demo member with an access token.

Usage:
    python scripts/seed_plans.py
    python scripts/seed_plans.py --demo-member demo@gym.local
"""

import argparse
import asyncio
import os
import sys
import uuid

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.database import async_session_factory, init_db
from app.models.member import Member, MemberRole
from app.services.membership_service import MembershipService
from app.services.plan_catalog_service import PlanCatalogService
from app.utils.security import create_access_token, get_password_hash

DEMO_PASSWORD = "ChangeMe123!"


async def seed(demo_email=None, plan_name="Basic"):
    await init_db()

    async with async_session_factory() as db:
        catalog = PlanCatalogService(db)
        created = await catalog.seed_default_plans()
        print(f"Plans created: {created}")

        plans = await catalog.list_plans()
        for plan in plans:
            print(f"  [{plan.id}] {plan.name:<20} {plan.price_minor_units:>6} minor units, "
                  f"{plan.duration_months} month(s)")

        if not demo_email:
            return

        result = await db.execute(select(Member).where(Member.email == demo_email))
        member = result.scalar_one_or_none()
        if member:
            print(f"\nDemo member already exists: {member.email} ({member.id})")
        else:
            member = Member(
                id=uuid.uuid4(),
                email=demo_email,
                hashed_password=get_password_hash(DEMO_PASSWORD),
                first_name="Demo",
                last_name="Member",
                role=MemberRole.MEMBER,
            )
            db.add(member)
            await db.commit()
            print(f"\n✅ Created demo member: {member.email} ({member.id}) password={DEMO_PASSWORD}")

        memberships = MembershipService(db)
        if await memberships.get_current_record(member.id) is None:
            plan = next((p for p in plans if p.name == plan_name), plans[0])
            record = await memberships.signup(member.id, plan.id)
            print(f"✅ Signed up on {plan.name}, ends {record.end_date.isoformat()}")

        token = create_access_token({"sub": str(member.id), "role": member.role.value})
        print(f"\nAccess token:\n{token}")


def main():
    parser = argparse.ArgumentParser(description="Seed the membership plan catalog")
    parser.add_argument("--demo-member", help="Email of a demo member to create and sign up")
    parser.add_argument("--plan", default="Basic", help="Plan name for the demo member")
    args = parser.parse_args()

    asyncio.run(seed(args.demo_member, args.plan))


if __name__ == "__main__":
    main()
