"""Settings module - runtime-tunable system configuration.

The router lives in ``routes`` so that importing the reader from other
modules does not pull in the HTTP layer.
"""

# Module metadata
__module_info__ = {
    "name": "settings",
    "version": "1.0.0",
    "description": "System settings with history, backups and import/export",
    "dependencies": ["activities"],
}
