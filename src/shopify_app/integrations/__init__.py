"""Adapters between web frameworks and shopify-app value objects."""
