"""Users module - administrator accounts, their roles and preferences."""

# Module metadata
__module_info__ = {
    "name": "users",
    "version": "1.0.0",
    "description": "User administration with role assignment",
    "dependencies": [],
}
