"""Access token acquisition: token exchange, refresh and client credentials."""

from shopify_app.exchange.client_credentials import exchange_using_client_credentials
from shopify_app.exchange.refresh_token import refresh_token_exchanged_access_token
from shopify_app.exchange.token_exchange import exchange_using_token_exchange

__all__ = [
    "exchange_using_client_credentials",
    "exchange_using_token_exchange",
    "refresh_token_exchanged_access_token",
]
