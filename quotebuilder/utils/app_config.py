"""Access to Flask config from services that may also run outside a request."""
from typing import Any

from flask import current_app, has_app_context


def config_value(key: str, default: Any = None) -> Any:
    """Read ``key`` from the active app config, or ``default`` without an app."""
    if has_app_context():
        return current_app.config.get(key, default)
    return default
