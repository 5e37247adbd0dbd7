from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import insert, select

from ...dbmodels import Users
from ...errors import MissingArgument, NotFound
from ...logging import get_logger
from ..types.user import User, UserInput

if TYPE_CHECKING:
    from ..context import RequestContext

logger = get_logger(__name__)


async def resolve_users(context: RequestContext) -> list[User]:
    rows = await context.execute(select(Users.id, Users.name).order_by(Users.id))
    return [User.from_row(row) for row in rows]


async def resolve_user_by_id(context: RequestContext, id: int) -> User:
    rows = await context.execute(select(Users.id, Users.name).where(Users.id == id))
    if not rows:
        raise NotFound(f"User {id} not found")
    return User.from_row(rows[0])


async def create_user(context: RequestContext, input: UserInput) -> User:
    if not input.name:
        raise MissingArgument('Argument "input.name" must not be empty.', argument="input.name")

    rows = await context.execute(insert(Users).values(name=input.name).returning(Users.id))
    user = User(id=rows[0]["id"], name=input.name)
    logger.info("Created user", user_id=user.id)
    return user
