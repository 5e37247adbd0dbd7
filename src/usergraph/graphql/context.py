"""
Per-request execution context passed to every resolver
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import RowMapping
from sqlalchemy.sql.expression import Executable

from ..database.pool import ConnectionPool
from ..logging import generate_request_id, get_logger, get_request_id

logger = get_logger(__name__)


@dataclass
class RequestContext:
    """Pool handle plus request-scoped state for one execution.

    A context never holds a connection between calls: each store call borrows
    one from the pool and hands it back when the call finishes.
    """

    pool: ConnectionPool
    request_id: str = field(default_factory=lambda: get_request_id() or generate_request_id())
    state: dict[str, Any] = field(default_factory=dict)

    async def execute(
        self, query: Executable | str, params: Mapping[str, Any] | None = None
    ) -> list[RowMapping]:
        logger.debug("Executing store call", request_id=self.request_id)
        return await self.pool.execute(query, params)
