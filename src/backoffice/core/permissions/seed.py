"""Idempotent creation of the built-in permissions and roles."""

import structlog
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.permissions.defaults import DEFAULT_ROLES, all_default_permissions
from backoffice.core.permissions.models import (
    Permission,
    Role,
    permission_dependencies,
    role_permissions,
    with_dependencies,
)


logger = structlog.get_logger()


async def seed_permissions(session: AsyncSession) -> dict[str, Permission]:
    """Create missing built-in permissions and link their dependencies.

    Returns:
        Every permission by name
    """
    existing = {p.name: p for p in (await session.execute(select(Permission))).scalars().all()}
    definitions = all_default_permissions()

    created = []
    for definition in definitions:
        if definition["name"] in existing:
            continue
        permission = Permission(
            name=definition["name"],
            display_name=definition["display_name"],
            description=definition["description"],
            module=definition["module"],
            type=definition["type"],
            is_system=True,
        )
        session.add(permission)
        existing[permission.name] = permission
        created.append(definition)
    await session.flush()

    links = [
        {
            "permission_id": existing[d["name"]].id,
            "depends_on_permission_id": existing[dep].id,
        }
        for d in created
        for dep in d["depends_on"]
    ]
    if links:
        await session.execute(insert(permission_dependencies), links)
        await session.flush()
    # Fill every dependency collection, including rows loaded one level down
    (await session.execute(with_dependencies())).scalars().all()

    logger.info("permissions_seeded", created=len(created), total=len(existing))
    return existing


async def seed_roles(session: AsyncSession, permissions: dict[str, Permission]) -> dict[str, Role]:
    """Create missing built-in roles with their permissions.

    Roles are created in declaration order so a parent always exists
    before its children. Existing roles are left untouched.
    """
    roles = {r.name: r for r in (await session.execute(select(Role))).scalars().all()}

    for definition in DEFAULT_ROLES:
        if definition["name"] in roles:
            continue
        parent = roles.get(definition["parent"]) if definition["parent"] else None
        role = Role(
            name=definition["name"],
            display_name=definition["display_name"],
            description=definition["description"],
            parent_id=parent.id if parent else None,
            is_system=True,
            is_active=True,
        )
        session.add(role)
        await session.flush()
        await session.execute(
            insert(role_permissions),
            [
                {"role_id": role.id, "permission_id": permissions[name].id}
                for name in definition["permissions"]
            ],
        )
        await session.refresh(role, attribute_names=["permissions"])
        roles[role.name] = role

    await session.flush()
    logger.info("roles_seeded", total=len(roles))
    return roles


async def seed_rbac(session: AsyncSession) -> dict[str, Role]:
    """Seed permissions then roles; returns every role by name."""
    permissions = await seed_permissions(session)
    return await seed_roles(session, permissions)
