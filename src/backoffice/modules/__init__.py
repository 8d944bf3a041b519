"""Feature modules with auto-discovery."""

import logging
from graphlib import CycleError, TopologicalSorter
from importlib import import_module
from pathlib import Path
from types import ModuleType

from fastapi import APIRouter


logger = logging.getLogger(__name__)


def _packages() -> dict[str, ModuleType]:
    modules_dir = Path(__file__).parent
    packages: dict[str, ModuleType] = {}
    for path in sorted(modules_dir.iterdir()):
        if path.is_dir() and not path.name.startswith("_") and (path / "__init__.py").exists():
            packages[path.name] = import_module(f"backoffice.modules.{path.name}")
    return packages


def module_order(packages: dict[str, ModuleType]) -> list[str]:
    """Order module names so each follows the modules it depends on.

    Raises:
        RuntimeError: If module dependencies form a cycle
    """
    graph = {
        name: [
            dep
            for dep in getattr(package, "__module_info__", {}).get("dependencies", [])
            if dep in packages
        ]
        for name, package in packages.items()
    }
    try:
        return list(TopologicalSorter(graph).static_order())
    except CycleError as e:
        raise RuntimeError(f"Module dependency cycle: {e.args[1]}") from e


def discover_modules() -> list[APIRouter]:
    """Auto-discover and return routers from all modules.

    Scans the modules directory for packages with a ``routes``
    submodule exposing ``router``.

    Returns:
        List of FastAPI routers, dependencies first.
    """
    packages = _packages()
    routers: list[APIRouter] = []

    for name in module_order(packages):
        try:
            routes = import_module(f"backoffice.modules.{name}.routes")
        except ImportError as e:
            logger.warning("Failed to load module %s: %s", name, e)
            continue
        if hasattr(routes, "router"):
            routers.append(routes.router)
            logger.info("Loaded module: %s", name)

    return routers
