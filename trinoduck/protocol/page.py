"""Result pages: one decoded coordinator response body."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from ..errors import DecodeError
from ..types import TypedValue, TypeSignature, decode, parse_signature

logger = logging.getLogger(__name__)


class QueryState(str, Enum):
    """Client-side lifecycle of one query."""

    CREATED = "CREATED"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (QueryState.FINISHED, QueryState.FAILED, QueryState.CANCELED)


# Coordinator-reported states -> client lifecycle
COORDINATOR_STATES = {
    "QUEUED": QueryState.QUEUED,
    "WAITING_FOR_RESOURCES": QueryState.QUEUED,
    "DISPATCHING": QueryState.QUEUED,
    "PLANNING": QueryState.QUEUED,
    "STARTING": QueryState.QUEUED,
    "RUNNING": QueryState.RUNNING,
    "BLOCKED": QueryState.RUNNING,
    "FINISHING": QueryState.RUNNING,
    "FINISHED": QueryState.FINISHED,
    "FAILED": QueryState.FAILED,
}


@dataclass(frozen=True)
class Column:
    """A result column descriptor."""

    name: str
    type: str
    ordinal: int
    signature: TypeSignature = field(compare=False, repr=False)

    @classmethod
    def from_json(cls, payload: dict[str, Any], ordinal: int) -> Column:
        try:
            name = payload["name"]
            type_text = payload["type"]
        except (KeyError, TypeError):
            raise DecodeError(f"malformed column descriptor: {payload!r}") from None
        return cls(name=name, type=type_text, ordinal=ordinal, signature=parse_signature(type_text))


@dataclass(frozen=True)
class QueryError:
    """The structured error of a FAILED page."""

    message: str
    error_code: int | None = None
    error_name: str | None = None
    error_type: str | None = None
    retriable: bool = False
    failure_info: dict[str, Any] | None = None
    error_location: dict[str, Any] | None = None

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> QueryError:
        failure_info = payload.get("failureInfo") or None
        message = payload.get("message")
        if not message and failure_info:
            message = failure_info.get("message")
        return cls(
            message=message or "unknown error",
            error_code=payload.get("errorCode"),
            error_name=payload.get("errorName"),
            error_type=payload.get("errorType"),
            retriable=bool(payload.get("retriable", False)),
            failure_info=failure_info,
            error_location=payload.get("errorLocation"),
        )

    @property
    def display_message(self) -> str:
        """Message prefixed with the failure type, as the coordinator logs it."""
        failure_type = (self.failure_info or {}).get("type")
        return f"{failure_type}: {self.message}" if failure_type else self.message


@dataclass
class ResultPage:
    """One coordinator response.

    Attributes:
        query_id: Coordinator-assigned query id.
        next_uri: Continuation URI; ``None`` on the terminal page.
        state: Lifecycle state mapped from ``stats.state``.
        columns: Column descriptors, ``None`` until the coordinator knows them.
        rows: Raw JSON rows aligned to ``columns``.
        error: Structured error of a FAILED page.
    """

    query_id: str | None
    next_uri: str | None
    state: QueryState
    columns: list[Column] | None = None
    rows: list[list[Any]] = field(default_factory=list)
    error: QueryError | None = None
    stats: dict[str, Any] = field(default_factory=dict)
    warnings: list[dict[str, Any]] = field(default_factory=list)
    info_uri: str | None = None
    update_type: str | None = None
    update_count: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.next_uri is None

    @classmethod
    def from_json(cls, body: Any) -> ResultPage:
        """Build a page from a decoded response body.

        Raises:
            DecodeError: The body is not a well-formed statement response.
        """
        if not isinstance(body, dict):
            raise DecodeError(f"expected a JSON object, got {type(body).__name__}")

        stats = body.get("stats") or {}
        raw_state = stats.get("state")
        error = QueryError.from_json(body["error"]) if body.get("error") else None
        next_uri = body.get("nextUri")

        if error is not None:
            state = QueryState.FAILED
            if next_uri:
                # An error payload governs; the coordinator has nothing more to say.
                logger.debug("Ignoring nextUri on failed page for query %s", body.get("id"))
                next_uri = None
        elif raw_state is None:
            state = QueryState.RUNNING if body.get("data") else QueryState.QUEUED
        else:
            try:
                state = COORDINATOR_STATES[raw_state]
            except KeyError:
                raise DecodeError(f"unknown query state {raw_state!r}") from None
            if state == QueryState.FAILED:
                error = QueryError(message="query failed without an error payload")
                next_uri = None

        columns = None
        if body.get("columns") is not None:
            columns = [Column.from_json(c, i) for i, c in enumerate(body["columns"])]

        rows = body.get("data") or []
        if not isinstance(rows, list):
            raise DecodeError(f"expected a list of rows, got {rows!r}")
        if columns is not None:
            for row in rows:
                if not isinstance(row, list) or len(row) != len(columns):
                    raise DecodeError(f"row does not match {len(columns)} columns: {row!r}")

        return cls(
            query_id=body.get("id"),
            next_uri=next_uri,
            state=state,
            columns=columns,
            rows=rows,
            error=error,
            stats=stats,
            warnings=body.get("warnings") or [],
            info_uri=body.get("infoUri"),
            update_type=body.get("updateType"),
            update_count=body.get("updateCount"),
        )

    def decoded_rows(self, columns: list[Column], decimal_as_double: bool = False) -> Iterator[list[TypedValue]]:
        """Decode rows one at a time against ``columns``."""
        for row in self.rows:
            if not isinstance(row, list) or len(row) != len(columns):
                raise DecodeError(f"row does not match {len(columns)} columns: {row!r}")
            yield [
                decode(column.signature, value, decimal_as_double=decimal_as_double)
                for column, value in zip(columns, row)
            ]
