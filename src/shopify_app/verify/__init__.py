"""Inbound request verifiers.

Each verifier takes the app credentials and a RequestInput and returns a
typed result; none of them raise.
"""

from shopify_app.verify.app_home import verify_app_home
from shopify_app.verify.app_proxy import verify_app_proxy
from shopify_app.verify.body_hmac import verify_flow_action, verify_webhook
from shopify_app.verify.extensions import (
    ADMIN_UI_EXTENSION,
    CHECKOUT_UI_EXTENSION,
    CUSTOMER_ACCOUNT_UI_EXTENSION,
    POS_UI_EXTENSION,
    verify_exchangeable,
    verify_non_exchangeable,
)

__all__ = [
    "ADMIN_UI_EXTENSION",
    "CHECKOUT_UI_EXTENSION",
    "CUSTOMER_ACCOUNT_UI_EXTENSION",
    "POS_UI_EXTENSION",
    "verify_app_home",
    "verify_app_proxy",
    "verify_exchangeable",
    "verify_flow_action",
    "verify_non_exchangeable",
    "verify_webhook",
]
