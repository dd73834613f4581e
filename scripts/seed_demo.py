"""Seed demo catalog projects and print bearer tokens for local testing."""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from nego_engine.core.security import create_access_token
from nego_engine.db.base import engine, async_session, Base
from nego_engine.db.models.project import Project


DEMO_USERS = [
    {"sub": "buyer-asha", "name": "Asha Verma", "role": "buyer"},
    {"sub": "seller-rohan", "name": "Rohan Mehta", "role": "seller"},
    {"sub": "seller-kavya", "name": "Kavya Iyer", "role": "seller"},
    {"sub": "admin-ops", "name": "Ops Admin", "role": "admin"},
]

DEMO_PROJECTS = [
    {
        "id": "proj-portfolio-site",
        "title": "Responsive portfolio website template",
        "price": Decimal("1000.00"),
        "seller_id": "seller-rohan",
        "minimum_price": None,
    },
    {
        "id": "proj-inventory-app",
        "title": "Inventory management app (Django + React)",
        "price": Decimal("4500.00"),
        "seller_id": "seller-rohan",
        "minimum_price": Decimal("3800.00"),
    },
    {
        "id": "proj-ml-notebooks",
        "title": "Churn prediction notebooks",
        "price": Decimal("2499.00"),
        "seller_id": "seller-kavya",
        "minimum_price": None,
    },
]


async def seed():
    """Create tables and seed demo data."""
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as db:
        try:
            created = 0
            for project_data in DEMO_PROJECTS:
                result = await db.execute(
                    select(Project).where(Project.id == project_data["id"])
                )
                if result.scalar_one_or_none():
                    print(f"  Project {project_data['id']} already exists, skipping")
                    continue
                db.add(Project(is_active=True, **project_data))
                created += 1
                print(f"  Created project: {project_data['title']}")

            await db.commit()

            print("Demo data seeded successfully!")
            print(f"  Projects: {created} new, {len(DEMO_PROJECTS)} total")
            print()
            print("Bearer tokens:")
            for u in DEMO_USERS:
                claims = {"sub": u["sub"]}
                if u["role"] == "admin":
                    claims["role"] = "admin"
                print(f"  {u['name']:12s} ({u['role']}): {create_access_token(claims)}")

        except Exception as e:
            await db.rollback()
            print(f"Error seeding data: {e}")
            raise


if __name__ == "__main__":
    asyncio.run(seed())
