"""Shared helpers for verifiers, exchange engines and the GraphQL executor."""
