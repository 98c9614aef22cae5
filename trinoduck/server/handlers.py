"""HTTP request handlers for the statement protocol.

Handlers:
    submit_statement: POST /v1/statement
    get_queued: GET /v1/statement/queued/{queryId}/{token}
    get_executing: GET /v1/statement/executing/{queryId}/{token}
    cancel_query: DELETE /v1/statement/{queued|executing}/{queryId}/{token}
    get_query_info: GET /v1/query/{queryId}
    get_server_info: GET /v1/info
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse, Response

from ..protocol.headers import (
    CATALOG_HEADER,
    PREPARED_STATEMENT_HEADER,
    QUERY_ID_HEADER,
    SCHEMA_HEADER,
    SESSION_HEADER,
    SOURCE_HEADER,
    USER_HEADER,
    parse_session_properties,
)
from .engine import EngineError, SessionContext
from .shared import ServerError, shared_engine, statement_manager
from .statement_manager import StatementResult

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger(__name__)

_STARTED = time.monotonic()


async def submit_statement(request: Request) -> JSONResponse:
    """Queue a statement; execution starts on the first poll."""
    body = await request.body()
    sql = body.decode("utf-8").strip()
    if not sql:
        raise ServerError(status_code=400, code="SYNTAX_ERROR", message="SQL statement is empty")

    try:
        properties = parse_session_properties(request.headers.get(SESSION_HEADER, ""))
        prepared = parse_session_properties(request.headers.get(PREPARED_STATEMENT_HEADER, ""))
    except ValueError as e:
        raise ServerError(status_code=400, code="INVALID_SESSION_PROPERTY", message=str(e)) from None

    stmt = statement_manager.create_statement(
        sql,
        user=request.headers.get(USER_HEADER),
        source=request.headers.get(SOURCE_HEADER),
        catalog=request.headers.get(CATALOG_HEADER),
        schema=request.headers.get(SCHEMA_HEADER),
        session_properties=properties,
        prepared_statements=prepared,
    )
    logger.info("Queued query %s", stmt.query_id)

    return _page(request, stmt, next_uri=_uri(request, "queued", stmt, 0))


async def get_queued(request: Request) -> JSONResponse:
    """Run a queued statement and hand out the column descriptors."""
    stmt = _lookup(request)

    if stmt.state == "QUEUED":
        context = SessionContext(
            catalog=stmt.catalog,
            schema=stmt.schema,
            properties=stmt.session_properties,
            prepared_statements=stmt.prepared_statements,
        )
        try:
            result = await run_in_threadpool(shared_engine.execute, stmt.sql, context)
        except EngineError as e:
            logger.info("Query %s failed: %s", stmt.query_id, e.message)
            statement_manager.update_statement(stmt.query_id, state="FAILED", error=e.to_json())
        else:
            statement_manager.update_statement(
                stmt.query_id,
                state="RUNNING",
                columns=result.columns,
                rows=result.rows,
                update_type=result.update_type,
                update_count=result.update_count,
                response_headers=result.headers,
            )

    if stmt.state == "FAILED":
        return _page(request, stmt)

    return _page(
        request,
        stmt,
        next_uri=_uri(request, "executing", stmt, 0),
        columns=stmt.columns,
    )


async def get_executing(request: Request) -> JSONResponse:
    """Return one page of results."""
    stmt = _lookup(request)
    token = _token(request)

    if stmt.state == "FAILED":
        return _page(request, stmt)

    if token >= stmt.get_page_count():
        raise ServerError(status_code=404, code="NOT_FOUND", message=f"Invalid token {token}")

    data = stmt.get_page(token)
    if token + 1 < stmt.get_page_count():
        return _page(
            request,
            stmt,
            next_uri=_uri(request, "executing", stmt, token + 1),
            columns=stmt.columns,
            data=data,
        )

    statement_manager.update_statement(stmt.query_id, state="FINISHED")
    return _page(
        request,
        stmt,
        columns=stmt.columns,
        data=data,
        headers=stmt.response_headers,
    )


async def cancel_query(request: Request) -> Response:
    """Cancel a query. Always succeeds, even for unknown or finished queries."""
    query_id = request.path_params["queryId"]
    if statement_manager.cancel_statement(query_id):
        logger.info("Canceled query %s", query_id)
    return Response(status_code=204, headers={QUERY_ID_HEADER: query_id})


async def get_query_info(request: Request) -> JSONResponse:
    """Get the state of a query.

    GET /v1/query/{queryId}
    """
    stmt = _lookup(request)
    info: dict[str, Any] = {
        "queryId": stmt.query_id,
        "state": stmt.state,
        "query": stmt.sql,
        "session": {
            "user": stmt.user,
            "source": stmt.source,
            "catalog": stmt.catalog,
            "schema": stmt.schema,
            "systemProperties": stmt.session_properties,
        },
        "createTime": stmt.created_on,
        "updateType": stmt.update_type,
    }
    if stmt.error:
        info["failureInfo"] = stmt.error.get("failureInfo")
        info["errorCode"] = {"code": stmt.error.get("errorCode"), "name": stmt.error.get("errorName")}
    return JSONResponse(info)


async def get_server_info(request: Request) -> JSONResponse:
    """GET /v1/info"""
    return JSONResponse(
        {
            "nodeVersion": {"version": "trinoduck"},
            "environment": "trinoduck",
            "coordinator": True,
            "starting": False,
            "uptime": f"{time.monotonic() - _STARTED:.2f}s",
        }
    )


# =============================================================================
# Helper Functions
# =============================================================================


def _lookup(request: Request) -> StatementResult:
    query_id = request.path_params["queryId"]
    stmt = statement_manager.get_statement(query_id)
    if stmt is None:
        raise ServerError(status_code=404, code="NOT_FOUND", message=f"Query not found: {query_id}")
    return stmt


def _token(request: Request) -> int:
    try:
        return int(request.path_params["token"])
    except ValueError:
        raise ServerError(status_code=404, code="NOT_FOUND", message="Invalid token") from None


def _uri(request: Request, stage: str, stmt: StatementResult, token: int) -> str:
    return f"{str(request.base_url).rstrip('/')}/v1/statement/{stage}/{stmt.query_id}/{token}"


def _stats(stmt: StatementResult, rows: int) -> dict[str, Any]:
    running = stmt.state == "RUNNING"
    return {
        "state": stmt.state,
        "queued": stmt.state == "QUEUED",
        "scheduled": stmt.state != "QUEUED",
        "nodes": 1,
        "totalSplits": 1,
        "queuedSplits": 1 if stmt.state == "QUEUED" else 0,
        "runningSplits": 1 if running else 0,
        "completedSplits": 0 if running else 1,
        "cpuTimeMillis": 0,
        "wallTimeMillis": int(time.time() * 1000) - stmt.created_on,
        "processedRows": rows,
        "processedBytes": 0,
    }


def _page(
    request: Request,
    stmt: StatementResult,
    next_uri: str | None = None,
    columns: list[dict[str, Any]] | None = None,
    data: list[list[Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build one statement response page."""
    body: dict[str, Any] = {
        "id": stmt.query_id,
        "infoUri": f"{str(request.base_url).rstrip('/')}/v1/query/{stmt.query_id}",
        "stats": _stats(stmt, len(data or [])),
        "warnings": [],
    }
    if next_uri is not None:
        body["nextUri"] = next_uri
    if stmt.error is not None:
        body["error"] = stmt.error
        body["stats"]["state"] = "FAILED"
    else:
        if columns is not None:
            body["columns"] = columns
        if data:
            body["data"] = data
        if stmt.update_type is not None:
            body["updateType"] = stmt.update_type
        if stmt.update_count is not None:
            body["updateCount"] = stmt.update_count

    response_headers = {QUERY_ID_HEADER: stmt.query_id}
    if headers:
        response_headers.update(headers)
    return JSONResponse(body, headers=response_headers)
