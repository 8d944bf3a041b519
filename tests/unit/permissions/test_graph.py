"""Unit tests for the permission dependency graph and role tree."""

from uuid import uuid4

import pytest

from backoffice.core.permissions.checker import grants_any
from backoffice.core.permissions.graph import PermissionGraph, RoleTree
from backoffice.core.permissions.models import Role



def _role(name: str, parent: Role | None = None) -> Role:
    return Role(id=uuid4(), name=name, display_name=name, parent_id=parent.id if parent else None)


class TestPermissionGraph:
    """Tests for PermissionGraph."""

    @pytest.fixture
    def ids(self) -> dict[str, object]:
        return {name: uuid4() for name in ("view", "edit", "manage", "other")}

    @pytest.fixture
    def graph(self, ids) -> PermissionGraph:
        # manage -> edit -> view
        return PermissionGraph([(ids["manage"], ids["edit"]), (ids["edit"], ids["view"])])

    def test_all_dependencies_are_transitive(self, graph, ids):
        assert graph.all_dependencies(ids["manage"]) == {ids["edit"], ids["view"]}

    def test_all_dependents_are_transitive(self, graph, ids):
        assert graph.all_dependents(ids["view"]) == {ids["edit"], ids["manage"]}

    def test_closure_adds_required_permissions(self, graph, ids):
        assert graph.closure([ids["manage"], ids["other"]]) == {
            ids["manage"],
            ids["edit"],
            ids["view"],
            ids["other"],
        }

    def test_self_dependency_is_a_cycle(self, graph, ids):
        assert graph.creates_cycle(ids["view"], [ids["view"]]) is True

    def test_depending_on_a_dependent_is_a_cycle(self, graph, ids):
        """view -> manage would close manage -> edit -> view."""
        assert graph.creates_cycle(ids["view"], [ids["manage"]]) is True

    def test_unrelated_dependency_is_not_a_cycle(self, graph, ids):
        assert graph.creates_cycle(ids["other"], [ids["manage"]]) is False


class TestRoleTree:
    """Tests for RoleTree."""

    @pytest.fixture
    def roles(self) -> dict[str, Role]:
        root = _role("root")
        child = _role("child", root)
        grandchild = _role("grandchild", child)
        sibling = _role("sibling", root)
        return {r.name: r for r in (root, child, grandchild, sibling)}

    @pytest.fixture
    def tree(self, roles) -> RoleTree:
        return RoleTree(roles.values())

    def test_ancestors_nearest_first(self, tree, roles):
        names = [r.name for r in tree.ancestors(roles["grandchild"].id)]
        assert names == ["child", "root"]

    def test_descendants(self, tree, roles):
        names = {r.name for r in tree.descendants(roles["root"].id)}
        assert names == {"child", "grandchild", "sibling"}

    def test_depth_and_height(self, tree, roles):
        assert tree.depth(roles["root"].id) == 1
        assert tree.depth(roles["grandchild"].id) == 3
        assert tree.subtree_height(roles["root"].id) == 3
        assert tree.subtree_height(roles["sibling"].id) == 1
        assert tree.max_depth() == 3

    def test_would_cycle(self, tree, roles):
        assert tree.would_cycle(roles["root"].id, roles["grandchild"].id) is True
        assert tree.would_cycle(roles["child"].id, roles["child"].id) is True
        assert tree.would_cycle(roles["sibling"].id, roles["child"].id) is False
        assert tree.would_cycle(roles["child"].id, None) is False

    def test_ancestors_stop_on_corrupt_loop(self):
        a = _role("a")
        b = _role("b", a)
        a.parent_id = b.id
        tree = RoleTree([a, b])
        assert [r.name for r in tree.ancestors(a.id)] == ["b"]


class TestGrantsAny:
    """Tests for wildcard-aware permission matching."""

    @pytest.mark.parametrize(
        ("granted", "required", "expected"),
        [
            ({"roles.view"}, "roles.view", True),
            ({"roles.view"}, "roles.edit", False),
            ({"roles.*"}, "roles.edit", True),
            ({"roles.*"}, "users.edit", False),
            ({"*"}, "anything.at_all", True),
            (set(), "roles.view", False),
        ],
    )
    def test_grants_any(self, granted, required, expected):
        assert grants_any(granted, required) is expected
