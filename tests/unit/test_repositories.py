"""Repository classes must not shadow builtins used in their annotations."""

import importlib
import inspect
import typing

import pytest


BUILTIN_TYPES = {
    "bool", "bytes", "dict", "float", "frozenset", "int", "list", "set", "str", "tuple", "type",
}

REPO_MODULES = [
    "backoffice.modules.activities.repos",
    "backoffice.modules.permissions.repos",
    "backoffice.modules.roles.repos",
    "backoffice.modules.settings.repos",
    "backoffice.modules.users.repos",
]


def _repositories(module_name: str) -> list[type]:
    module = importlib.import_module(module_name)
    return [
        cls
        for _, cls in inspect.getmembers(module, inspect.isclass)
        if cls.__module__ == module_name and cls.__name__.endswith("Repository")
    ]


@pytest.mark.parametrize("module_name", REPO_MODULES)
def test_no_builtin_types_as_methods(module_name):
    for cls in _repositories(module_name):
        shadowed = BUILTIN_TYPES & set(vars(cls))
        assert not shadowed, f"{cls.__name__} shadows {sorted(shadowed)}"


@pytest.mark.parametrize("module_name", REPO_MODULES)
def test_method_annotations_resolve(module_name):
    for cls in _repositories(module_name):
        for _, method in inspect.getmembers(cls, inspect.isfunction):
            typing.get_type_hints(method)


def test_list_methods_are_named_for_their_resource():
    from backoffice.modules.permissions.repos import (
        PermissionRepository,
        PermissionTemplateRepository,
    )
    from backoffice.modules.roles.repos import RoleRepository
    from backoffice.modules.settings.repos import SettingBackupRepository, SettingChangeRepository
    from backoffice.modules.users.repos import UserRepository

    assert callable(PermissionRepository.list_permissions)
    assert callable(PermissionTemplateRepository.list_templates)
    assert callable(RoleRepository.list_roles)
    assert callable(UserRepository.list_users)
    assert callable(SettingChangeRepository.list_changes)
    assert callable(SettingBackupRepository.list_backups)
