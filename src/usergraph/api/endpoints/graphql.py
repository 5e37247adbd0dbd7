"""GraphQL query endpoint."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...errors import MalformedDocument
from ...graphql import ExecutionEngine, GraphQLRequest, RequestContext
from ...graphql.execution import ExecutionResult, to_graphql_error
from ...logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _bad_request(message: str) -> JSONResponse:
    logger.info("Rejected GraphQL request body", reason=message)
    error = to_graphql_error(MalformedDocument(message))
    return JSONResponse(ExecutionResult(errors=[error]).formatted, status_code=400)


async def _execute(
    request: Request, payload: dict[str, Any], allow_mutations: bool
) -> JSONResponse:
    try:
        gql_request = GraphQLRequest.from_payload(payload)
    except MalformedDocument as e:
        return JSONResponse(ExecutionResult(errors=[to_graphql_error(e)]).formatted)

    engine: ExecutionEngine = request.app.state.engine
    context = RequestContext(pool=request.app.state.pool, state={"request": request})
    result = await engine.execute(gql_request, context, allow_mutations=allow_mutations)
    return JSONResponse(result.formatted)


@router.post("/graphql")
async def graphql_post(request: Request) -> JSONResponse:
    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request("Request body is not valid JSON.")
    if not isinstance(payload, dict):
        return _bad_request("Request body must be a JSON object.")
    return await _execute(request, payload, allow_mutations=True)


@router.get("/graphql")
async def graphql_get(request: Request) -> JSONResponse:
    payload: dict[str, Any] = dict(request.query_params)
    raw_variables = payload.get("variables")
    if raw_variables:
        try:
            payload["variables"] = json.loads(raw_variables)
        except json.JSONDecodeError:
            return _bad_request("Variables are invalid JSON.")
    return await _execute(request, payload, allow_mutations=False)
