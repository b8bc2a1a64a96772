# backend/services/settings.py
from flask import current_app, has_app_context


def app_setting(name, default=None):
    """Read a config value from the running app, or fall back outside a request/app context."""
    if has_app_context():
        return current_app.config.get(name, default)
    return default
