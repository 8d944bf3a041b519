"""Notifications module - rules that turn activities into alerts."""

# Module metadata
__module_info__ = {
    "name": "notifications",
    "version": "1.0.0",
    "description": "Activity notification rules, in-app notifications and webhooks",
    "dependencies": ["activities", "users"],
}
