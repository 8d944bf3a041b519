"""Permissions module - permission catalog, dependencies and transfer."""

# Module metadata
__module_info__ = {
    "name": "permissions",
    "version": "1.0.0",
    "description": "Permission management with dependency chains and import/export",
    "dependencies": [],
}
