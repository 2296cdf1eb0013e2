"""User-Agent sent on every outbound request."""

from __future__ import annotations

import platform

from shopify_app._version import __version__

PACKAGE_NAME = "shopify-app-python"


def user_agent() -> str:
    """Format: ``{package} v{version} | Python {python_version}``."""
    return f"{PACKAGE_NAME} v{__version__} | Python {platform.python_version()}"
