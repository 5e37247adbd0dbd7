"""
Database module for usergraph
"""

from .pool import ConnectionPool, close_pool, init_pool

__all__ = ["ConnectionPool", "close_pool", "init_pool"]
