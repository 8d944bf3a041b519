#!/usr/bin/env python
"""
Generate seed data for development.

    python scripts/seed.py --scenario default
    python scripts/seed.py --scenario demo
"""

import argparse
import asyncio
import os
import sys
from datetime import UTC, datetime

from sqlalchemy import insert, select


# Add src to path for imports
sys.path.insert(0, "src")

from backoffice.core.auth.backend import hash_password
from backoffice.core.database import async_session_factory
from backoffice.core.permissions.models import UserRole
from backoffice.core.permissions.seed import seed_rbac
from backoffice.modules.activities.logger import ActivityLogger
from backoffice.modules.activities.models import Activity, RetentionPolicy
from backoffice.modules.notifications.models import NotificationRule
from backoffice.modules.users.models import User


ADMIN_EMAIL = os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "ChangeMe123!")

DEMO_USERS = [
    {"email": "manager@example.com", "username": "manager", "full_name": "Morgan Manager", "role": "user_manager"},
    {"email": "auditor@example.com", "username": "auditor", "full_name": "Avery Auditor", "role": "auditor"},
    {"email": "viewer@example.com", "username": "viewer", "full_name": "Vic Viewer", "role": "viewer"},
]

SAMPLE_ACTIVITIES = [
    {"type": "login", "description": "User logged in", "module": "auth", "risk_level": 2},
    {"type": "user_updated", "description": "Updated profile", "module": "users"},
    {"type": "role_assigned", "description": "Assigned a role", "module": "roles", "risk_level": 4},
    {
        "type": "login_failed",
        "description": "Failed login attempt",
        "module": "auth",
        "result": "failed",
        "risk_level": 5,
        "ip_address": "203.0.113.7",
    },
]


async def _ensure_user(session, email: str, username: str, full_name: str, superuser: bool = False) -> User:
    existing = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if existing:
        print(f"User already exists: {email}")
        return existing

    user = User(
        email=email,
        username=username,
        full_name=full_name,
        password_hash=hash_password(ADMIN_PASSWORD),
        password_changed_at=datetime.now(UTC),
        is_active=True,
        is_superuser=superuser,
    )
    session.add(user)
    await session.flush()
    print(f"Created user: {email}")
    return user


async def _assign(session, user: User, role) -> None:
    exists = await session.execute(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
    )
    if exists.scalar_one_or_none() is None:
        await session.execute(insert(UserRole).values(user_id=user.id, role_id=role.id))


async def seed_default() -> None:
    """Built-in permissions, roles and the first administrator."""
    async with async_session_factory() as session:
        roles = await seed_rbac(session)
        admin = await _ensure_user(session, ADMIN_EMAIL, "admin", "Administrator", superuser=True)
        await _assign(session, admin, roles["super_admin"])
        await session.commit()
        print(f"Seeded {len(roles)} roles")


async def seed_demo() -> None:
    """Default data plus demo users and activities, a notification rule and a retention policy."""
    await seed_default()

    async with async_session_factory() as session:
        roles = await seed_rbac(session)
        users = []
        for data in DEMO_USERS:
            user = await _ensure_user(session, data["email"], data["username"], data["full_name"])
            await _assign(session, user, roles[data["role"]])
            users.append(user)

        has_activity = await session.execute(select(Activity.id).limit(1))
        if has_activity.scalar_one_or_none() is None:
            count = await ActivityLogger(session).log_batch(
                [{**sample, "user_id": user.id} for user in users for sample in SAMPLE_ACTIVITIES]
            )
            print(f"Created {count} sample activities")

        rule_name = "High risk activity"
        rule = await session.execute(select(NotificationRule).where(NotificationRule.name == rule_name))
        if rule.scalar_one_or_none() is None:
            session.add(
                NotificationRule(
                    name=rule_name,
                    description="Alert administrators about high risk activity",
                    conditions={"min_risk_level": 7},
                    actions=[{"type": "in_app"}],
                    priority=3,
                    is_active=True,
                    triggered_count=0,
                )
            )
            print(f"Created notification rule: {rule_name}")

        policy_name = "Routine activity (30 days)"
        policy = await session.execute(select(RetentionPolicy).where(RetentionPolicy.name == policy_name))
        if policy.scalar_one_or_none() is None:
            session.add(
                RetentionPolicy(
                    name=policy_name,
                    activity_type="page_view",
                    retention_days=30,
                    action="archive",
                    is_active=True,
                    priority=1,
                )
            )
            print(f"Created retention policy: {policy_name}")

        await session.commit()


async def main(scenario: str) -> None:
    """Run the seeding based on scenario."""
    if scenario == "default":
        await seed_default()
    elif scenario == "demo":
        await seed_demo()
    else:
        print(f"Unknown scenario: {scenario}")
        print("Available scenarios: default, demo")
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed database with initial data")
    parser.add_argument(
        "--scenario",
        "-s",
        default="default",
        help="Seed scenario to run (default, demo)",
    )
    args = parser.parse_args()

    asyncio.run(main(args.scenario))
