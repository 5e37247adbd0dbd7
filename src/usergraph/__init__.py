"""
usergraph: a GraphQL query gateway over a relational users store
"""

__version__ = "0.1.0"

from .config import settings

__all__ = ["settings", "__version__"]
