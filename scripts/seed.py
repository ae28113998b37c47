#!/usr/bin/env python3
"""
Seed script: creates one user per role with demo API keys and a sample DRAFT ITE.
Run after migrations: python scripts/seed.py
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ites.auth.middleware import hash_api_key
from ites.auth.roles import Role
from ites.config import settings
from ites.database import build_engine
from ites.engine.records import create_evaluation
from ites.storage.repositories import create_user, get_user_by_email


DEMO_USERS = [
    ("admin@example.com", "Demo Admin", Role.ADMIN, "sk_demo_ite_admin"),
    ("creator@example.com", "Demo Creator", Role.CREATOR, "sk_demo_ite_creator"),
    ("reviewer@example.com", "Demo Reviewer", Role.REVIEWER, "sk_demo_ite_reviewer"),
    ("approver@example.com", "Demo Approver", Role.APPROVER, "sk_demo_ite_approver"),
    ("viewer@example.com", "Demo Viewer", Role.VIEWER, "sk_demo_ite_viewer"),
]

SAMPLE_ITE = {
    "metadata_json": {"itsNo": "ITS-001", "eprf": "EPRF-1001", "forUser": "Procurement"},
    "its_fields": [
        {"feature": "Brand", "itsSpec": "Any reputable"},
        {"feature": "Capacity", "itsSpec": ">= 5 kVA"},
    ],
    "comparison_data": {
        "suppliers": [{"name": "Alpha Trading"}, {"name": "Beta Supplies"}],
        "comparison": [
            {
                "feature": "Brand",
                "itsSpec": "Any reputable",
                "suppliers": [{"value": "APC"}, {"value": "Eaton"}],
            },
            {
                "feature": "Capacity",
                "itsSpec": ">= 5 kVA",
                "suppliers": [{"value": "6 kVA"}, {"value": "4.5 kVA"}],
            },
        ],
    },
    "recommendations": [{"supplier": "Alpha Trading", "note": "Meets all requirements"}],
    "comments": "Seeded sample",
}


async def seed():
    engine = build_engine(settings.database_url)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        users = {}
        for email, name, role, api_key in DEMO_USERS:
            user = await get_user_by_email(session, email)
            if user:
                print(f"User {email} already exists, using existing.")
            else:
                user = await create_user(
                    session, email=email, name=name, role=role, api_key_hash=hash_api_key(api_key)
                )
            users[role] = user
        await session.commit()

        result = await create_evaluation(session, users[Role.CREATOR], SAMPLE_ITE)
        if not result.ok:
            print(f"Failed to create sample ITE: {result.error.reason}")
            await session.rollback()
        else:
            await session.commit()
            print(f"Created sample ITE {result.value.ite_number}")

    await engine.dispose()

    print("\nDemo API keys (use as 'Authorization: Bearer <key>'):")
    for email, _, role, api_key in DEMO_USERS:
        print(f"  {role.value:<9} {email:<24} {api_key}")


if __name__ == "__main__":
    asyncio.run(seed())
