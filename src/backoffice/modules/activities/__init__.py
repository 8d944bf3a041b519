"""Activities module - signed activity log, statistics and retention."""

# Module metadata
__module_info__ = {
    "name": "activities",
    "version": "1.0.0",
    "description": "Activity logging, security analysis, export and retention",
    "dependencies": ["users"],
}
