"""Redirect helpers for embedded app pages."""

from shopify_app.redirect.app_home import app_home_parent_redirect, app_home_redirect

__all__ = ["app_home_parent_redirect", "app_home_redirect"]
