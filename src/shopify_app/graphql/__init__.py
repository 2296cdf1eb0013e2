"""Admin GraphQL API access."""

from shopify_app.graphql.admin import admin_graphql_request

__all__ = ["admin_graphql_request"]
