"""Roles module - role hierarchy and permission assignment."""

# Module metadata
__module_info__ = {
    "name": "roles",
    "version": "1.0.0",
    "description": "Role management with inheritance and bulk permission assignment",
    "dependencies": ["permissions"],
}
