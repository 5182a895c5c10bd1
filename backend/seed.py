"""Seed script for the leave management platform.

Populates the database with a small demo organization:
- 1 organization (Acme Corporation) with the default leave types
- 2 teams (Engineering, Sales) with their managers
- 8 users with default balances for the current year
- a handful of leave requests (pending, approved, rejected)

Usage:
    cd backend && python seed.py
    # Or inside Docker:
    docker-compose exec backend python seed.py
"""

import asyncio
import sys
import os
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

# Ensure the backend directory is on the path when running from backend/
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.database import async_session_factory
from app.core.security import hash_password
from app.models import LeaveRequest, LeaveType, Organization, Team, User
from app.services.leave.approval import days_between
from app.services.leave.balances import apply_approval, seed_default_balances
from app.services.organizations import register_organization


# ── Seed Data Definitions ────────────────────────────────────────────────────

ADMIN = {"name": "Sarah Chen", "email": "sarah.chen@acme.com"}

TEAMS_DATA = [
    {"name": "Engineering", "description": "Product and platform engineering"},
    {"name": "Sales", "description": "Account executives and sales ops"},
]

USERS_DATA = [
    {"role": "manager", "name": "Michael Roberts", "email": "michael.roberts@acme.com",
     "team": "Engineering", "gender": "male", "children": 2, "manages": True},
    {"role": "employee", "name": "Emily Johnson", "email": "emily.johnson@acme.com",
     "team": "Engineering", "gender": "female", "children": 1},
    {"role": "employee", "name": "James Wilson", "email": "james.wilson@acme.com",
     "team": "Engineering", "gender": "male", "children": 0},
    {"role": "manager", "name": "Priya Patel", "email": "priya.patel@acme.com",
     "team": "Sales", "gender": "female", "children": 0, "manages": True},
    {"role": "employee", "name": "David Kim", "email": "david.kim@acme.com",
     "team": "Sales", "gender": "male", "children": 1},
    {"role": "employee", "name": "Maria Garcia", "email": "maria.garcia@acme.com",
     "team": "Sales", "gender": "female", "children": 0},
    {"role": "employee", "name": "Alex Thompson", "email": "alex.thompson@acme.com",
     "team": None, "gender": None, "children": 0},
]


def build_leave_requests(today: date) -> list[dict]:
    """Requests relative to today so the demo always has upcoming leave."""
    monday = today - timedelta(days=today.weekday())
    return [
        {"email": "emily.johnson@acme.com", "type": "Annual leave",
         "start": monday + timedelta(days=14), "end": monday + timedelta(days=18),
         "status": "pending", "notes": "Family holiday"},
        {"email": "david.kim@acme.com", "type": "On-demand leave",
         "start": monday + timedelta(days=21), "end": monday + timedelta(days=21),
         "status": "pending", "notes": None},
        {"email": "james.wilson@acme.com", "type": "Annual leave",
         "start": monday, "end": monday + timedelta(days=2),
         "status": "approved", "notes": "Moving flat"},
        {"email": "maria.garcia@acme.com", "type": "Sick leave",
         "start": monday + timedelta(days=1), "end": monday + timedelta(days=2),
         "status": "approved", "notes": None},
        {"email": "alex.thompson@acme.com", "type": "Annual leave",
         "start": monday + timedelta(days=7), "end": monday + timedelta(days=11),
         "status": "rejected", "notes": "Conflicts with release week"},
    ]


# ── Main Seed Function ────────────────────────────────────────────────────────

async def seed():
    """Seed the database with a demo organization."""
    async with async_session_factory() as db:
        # 1. Check idempotency
        result = await db.execute(
            select(Organization).where(Organization.slug == "acme-corp")
        )
        if result.scalar_one_or_none():
            print("⚠️  Organization 'acme-corp' already exists. Skipping seed.")
            print("   To re-seed, delete the organization first or reset the DB.")
            return

        print("🌱 Starting database seed...\n")

        # 2. Organization, admin and default leave types
        print("📦 Creating organization: Acme Corporation...")
        org, admin = await register_organization(
            db,
            org_name="Acme Corporation",
            slug="acme-corp",
            admin_email=ADMIN["email"],
            admin_name=ADMIN["name"],
            password="password123",
        )
        org_id = org.id
        print(f"   ✅ Organization created (ID: {org_id})")

        # 3. Teams
        print("\n🧩 Creating teams...")
        teams = {}
        for data in TEAMS_DATA:
            team = Team(organization_id=org_id, name=data["name"], description=data["description"])
            db.add(team)
            teams[data["name"]] = team
        await db.flush()
        print(f"   ✅ {len(teams)} teams created")

        # 4. Users and balances
        print("\n👥 Creating users...")
        hashed_pw = hash_password("password123")
        users = {ADMIN["email"]: admin}
        for data in USERS_DATA:
            team = teams.get(data["team"]) if data["team"] else None
            user = User(
                organization_id=org_id,
                team_id=team.id if team else None,
                email=data["email"],
                hashed_password=hashed_pw,
                role=data["role"],
                full_name=data["name"],
                gender=data["gender"],
                children_count=data["children"],
                is_active=True,
            )
            db.add(user)
            await db.flush()
            if team and data.get("manages"):
                team.manager_id = user.id
            await seed_default_balances(db, user)
            users[data["email"]] = user
            print(f"   ✅ {data['name']} ({data['role']}, team: {data['team'] or '-'})")
        await db.flush()

        # 5. Leave requests
        print("\n📝 Creating leave requests...")
        types = {
            t.name: t
            for t in (
                await db.execute(select(LeaveType).where(LeaveType.organization_id == org_id))
            ).scalars()
        }
        now = datetime.now(timezone.utc)
        leave_count = 0
        for req in build_leave_requests(date.today()):
            user = users[req["email"]]
            leave_type = types[req["type"]]
            days = days_between(req["start"], req["end"])
            reviewed = req["status"] != "pending"
            lr = LeaveRequest(
                organization_id=org_id,
                user_id=user.id,
                leave_type_id=leave_type.id,
                start_date=req["start"],
                end_date=req["end"],
                days_requested=days,
                status=req["status"],
                notes=req["notes"],
                reviewed_by=admin.id if reviewed else None,
                reviewed_at=now if reviewed else None,
                created_by=user.id,
            )
            db.add(lr)
            if req["status"] == "approved":
                await apply_approval(
                    db, user.id, leave_type.id, days, org_id, year=req["start"].year
                )
            leave_count += 1
        await db.flush()
        print(f"   ✅ {leave_count} leave requests created")

        # 6. Commit everything
        await db.commit()
        print("\n" + "=" * 60)
        print("✅ Database seeding complete!")
        print("=" * 60)
        print(f"\n📊 Summary:")
        print(f"   • 1 organization (Acme Corporation)")
        print(f"   • {len(teams)} teams")
        print(f"   • {len(users)} users with default balances")
        print(f"   • {leave_count} leave requests")
        print(f"\n🔑 Login Credentials (all use password: password123):")
        print(f"   {'Email':<35} {'Role':<15} {'Name'}")
        print(f"   {'-'*35} {'-'*15} {'-'*20}")
        print(f"   {ADMIN['email']:<35} {'admin':<15} {ADMIN['name']}")
        for data in USERS_DATA:
            print(f"   {data['email']:<35} {data['role']:<15} {data['name']}")
        print()


# ── Entry Point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    print("=" * 60)
    print("🌱 Leave Management Seed Script")
    print("=" * 60)
    print()
    asyncio.run(seed())
