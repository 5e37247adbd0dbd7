"""
GraphQL layer: schema registry, request context and execution engine
"""

from .context import RequestContext
from .execution import ExecutionEngine, ExecutionResult, GraphQLRequest
from .schema import registry

__all__ = [
    "ExecutionEngine",
    "ExecutionResult",
    "GraphQLRequest",
    "RequestContext",
    "registry",
]
