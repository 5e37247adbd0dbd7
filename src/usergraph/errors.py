"""
Error taxonomy for the usergraph gateway.

Document errors are raised before any resolver runs and yield ``data: null``.
Resolution errors are raised by resolvers or the connection pool and are
attached to the failing field. Configuration errors abort startup.
"""

from __future__ import annotations


class UserGraphError(Exception):
    """Base class for all gateway errors."""

    code = "INTERNAL_SERVER_ERROR"
    # AST nodes the error points at; filled in by the execution engine
    nodes = None

    def __init__(self, message: str, *, argument: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.argument = argument

    @property
    def extensions(self) -> dict[str, str]:
        ext = {"code": self.code}
        if self.argument:
            ext["argument"] = self.argument
        return ext


class ConfigurationError(UserGraphError):
    """Raised at startup when configuration is missing or unusable."""

    code = "CONFIGURATION_ERROR"


# Document-level errors


class DocumentError(UserGraphError):
    """The query document cannot be executed at all."""

    code = "GRAPHQL_VALIDATION_FAILED"


class MalformedDocument(DocumentError):
    code = "GRAPHQL_PARSE_FAILED"


class UnknownOperation(DocumentError):
    """A requested operation or field does not exist in the schema."""

    code = "UNKNOWN_OPERATION"


class UnknownArgument(DocumentError):
    code = "UNKNOWN_ARGUMENT"


class MissingArgument(DocumentError):
    """A required argument (or required input field) was not supplied."""

    code = "MISSING_ARGUMENT"


class ArgumentTypeMismatch(DocumentError):
    code = "ARGUMENT_TYPE_MISMATCH"


# Field-level (resolution) errors


class ResolutionError(UserGraphError):
    """A resolver failed; reported against the path of its field."""


class NotFound(ResolutionError):
    code = "NOT_FOUND"


class QueryRejected(ResolutionError):
    """The store refused the statement (constraint or syntax failure)."""

    code = "QUERY_REJECTED"


class StoreUnavailable(ResolutionError):
    code = "STORE_UNAVAILABLE"


class PoolExhausted(ResolutionError):
    """No pooled connection became free before the acquire timeout."""

    code = "POOL_EXHAUSTED"
