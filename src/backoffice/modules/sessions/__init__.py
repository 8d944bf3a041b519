"""Sessions module - idle countdown and multi-device session control."""

# Module metadata
__module_info__ = {
    "name": "sessions",
    "version": "1.0.0",
    "description": "Session status, extension and revocation",
    "dependencies": ["users", "activities"],
}
