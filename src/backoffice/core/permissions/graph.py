"""Graph helpers for permission dependencies and the role hierarchy.

Both graphs are small, so they are loaded whole and walked in memory
rather than with recursive SQL.
"""

from collections import defaultdict, deque
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.permissions.models import Role, permission_dependencies


class PermissionGraph:
    """Dependency edges between permissions (``permission -> depends on``)."""

    def __init__(self, edges: Iterable[tuple[UUID, UUID]]) -> None:
        self.depends_on: dict[UUID, set[UUID]] = defaultdict(set)
        self.required_by: dict[UUID, set[UUID]] = defaultdict(set)
        for permission_id, dependency_id in edges:
            self.depends_on[permission_id].add(dependency_id)
            self.required_by[dependency_id].add(permission_id)

    @classmethod
    async def load(cls, session: AsyncSession) -> "PermissionGraph":
        result = await session.execute(
            select(
                permission_dependencies.c.permission_id,
                permission_dependencies.c.depends_on_permission_id,
            )
        )
        return cls((row[0], row[1]) for row in result.all())

    @staticmethod
    def _walk(start: Iterable[UUID], edges: dict[UUID, set[UUID]]) -> set[UUID]:
        seen: set[UUID] = set()
        queue = deque(start)
        while queue:
            node = queue.popleft()
            for nxt in edges.get(node, ()):
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return seen

    def all_dependencies(self, permission_id: UUID) -> set[UUID]:
        """Every permission ``permission_id`` transitively depends on."""
        return self._walk([permission_id], self.depends_on) - {permission_id}

    def all_dependents(self, permission_id: UUID) -> set[UUID]:
        """Every permission that transitively depends on ``permission_id``."""
        return self._walk([permission_id], self.required_by) - {permission_id}

    def closure(self, permission_ids: Iterable[UUID]) -> set[UUID]:
        """The given permissions plus all of their dependencies."""
        ids = set(permission_ids)
        return ids | self._walk(ids, self.depends_on)

    def creates_cycle(self, permission_id: UUID, dependency_ids: Iterable[UUID]) -> bool:
        """Check whether depending on ``dependency_ids`` would form a cycle.

        A cycle exists when a proposed dependency is the permission itself
        or already (transitively) depends on it.
        """
        for dependency_id in dependency_ids:
            if dependency_id == permission_id:
                return True
            if permission_id in self._walk([dependency_id], self.depends_on):
                return True
        return False


class RoleTree:
    """Parent links between roles, keyed by role id."""

    def __init__(self, roles: Iterable[Role]) -> None:
        self.roles: dict[UUID, Role] = {role.id: role for role in roles}
        self.children: dict[UUID | None, list[Role]] = defaultdict(list)
        for role in self.roles.values():
            self.children[role.parent_id].append(role)

    @classmethod
    async def load(cls, session: AsyncSession) -> "RoleTree":
        result = await session.execute(select(Role).order_by(Role.name))
        return cls(result.scalars().all())

    def ancestors(self, role_id: UUID) -> list[Role]:
        """Parent, grandparent, ... of a role, nearest first (cycle safe)."""
        chain: list[Role] = []
        seen = {role_id}
        current = self.roles.get(role_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                break
            seen.add(current.parent_id)
            current = self.roles.get(current.parent_id)
            if current is not None:
                chain.append(current)
        return chain

    def descendants(self, role_id: UUID) -> list[Role]:
        found: list[Role] = []
        seen = {role_id}
        queue = deque([role_id])
        while queue:
            for child in self.children.get(queue.popleft(), []):
                if child.id not in seen:
                    seen.add(child.id)
                    found.append(child)
                    queue.append(child.id)
        return found

    def depth(self, role_id: UUID) -> int:
        """Depth of a role in the tree; roots have depth 1."""
        return len(self.ancestors(role_id)) + 1

    def subtree_height(self, role_id: UUID) -> int:
        """Number of levels from this role down to its deepest descendant."""
        children = self.children.get(role_id, [])
        if not children:
            return 1
        return 1 + max(self.subtree_height(child.id) for child in children)

    def would_cycle(self, role_id: UUID, new_parent_id: UUID | None) -> bool:
        """Check whether re-parenting a role under ``new_parent_id`` loops."""
        if new_parent_id is None:
            return False
        if new_parent_id == role_id:
            return True
        return any(d.id == new_parent_id for d in self.descendants(role_id))

    def max_depth(self) -> int:
        roots = self.children.get(None, [])
        if not roots:
            return 0
        return max(self.subtree_height(root.id) for root in roots)
