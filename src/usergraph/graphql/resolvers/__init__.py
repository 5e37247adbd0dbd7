"""Resolver functions bound to root fields by the schema registry.

Each resolver takes the request context and its coerced arguments and makes
exactly one call through the connection pool.
"""

from .user import create_user, resolve_user_by_id, resolve_users

__all__ = ["create_user", "resolve_user_by_id", "resolve_users"]
