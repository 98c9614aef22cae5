"""Statement management for the statement protocol.

This module provides storage and lifecycle management for submitted
queries, with LRU eviction for memory management.
"""

from __future__ import annotations

import itertools
import os
import secrets
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

USER_CANCELED = {
    "message": "Query was canceled",
    "errorCode": 3,
    "errorName": "USER_CANCELED",
    "errorType": "USER_ERROR",
}


@dataclass
class StatementResult:
    """Stores the state and result of one submitted query.

    Attributes:
        query_id: Unique identifier for the query
        state: Coordinator state (QUEUED, RUNNING, FINISHED, FAILED)
        sql: The statement text as submitted
        user: Value of the user header
        source: Value of the source header
        catalog: Session catalog at submission time
        schema: Session schema at submission time
        session_properties: Session properties at submission time
        prepared_statements: Prepared statements sent with the request
        created_on: Timestamp when the query was created (ms since epoch)
        columns: Column descriptors (populated once executed)
        rows: Result rows, already encoded for JSON
        page_size: Rows per executing page
        update_type: Statement kind for non-query statements
        update_count: Affected rows for DML
        error: Error payload (on failure)
        response_headers: Session headers to send with the final page
    """

    query_id: str
    state: str
    sql: str
    user: str | None = None
    source: str | None = None
    catalog: str | None = None
    schema: str | None = None
    session_properties: dict[str, str] = field(default_factory=dict)
    prepared_statements: dict[str, str] = field(default_factory=dict)
    created_on: int = field(default_factory=lambda: int(time.time() * 1000))

    columns: list[dict[str, Any]] | None = None
    rows: list[list[Any]] | None = None
    page_size: int = field(default_factory=lambda: int(os.getenv("TRINODUCK_PAGE_SIZE", "500")))

    update_type: str | None = None
    update_count: int | None = None
    error: dict[str, Any] | None = None
    response_headers: dict[str, str] = field(default_factory=dict)

    def get_page_count(self) -> int:
        """Get the number of executing pages; an empty result still has one."""
        if not self.rows:
            return 1
        return (len(self.rows) + self.page_size - 1) // self.page_size

    def get_page(self, page: int) -> list[list[Any]]:
        """Get rows for a specific page.

        Args:
            page: Zero-indexed page number

        Returns:
            List of rows in the page
        """
        if not self.rows:
            return []
        start = page * self.page_size
        end = start + self.page_size
        return self.rows[start:end]

    @property
    def is_done(self) -> bool:
        return self.state in ("FINISHED", "FAILED")


class StatementManager:
    """Manages submitted queries.

    Provides thread-safe storage with LRU eviction to prevent unbounded
    memory growth.

    Attributes:
        max_statements: Maximum number of statements to retain
    """

    def __init__(self, max_statements: int = 1000) -> None:
        self._statements: dict[str, StatementResult] = {}
        self._order: list[str] = []
        self._max_statements = max_statements
        self._lock = Lock()
        self._counter = itertools.count(1)

    def _next_query_id(self) -> str:
        # Same shape as coordinator ids: 20240101_120000_00001_abcde
        stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
        return f"{stamp}_{next(self._counter):05d}_{secrets.token_hex(3)[:5]}"

    def create_statement(self, sql: str, **context: Any) -> StatementResult:
        """Create a new queued statement.

        Args:
            sql: The statement text
            **context: Session context (user, source, catalog, schema, ...)

        Returns:
            New StatementResult in QUEUED state
        """
        stmt = StatementResult(query_id=self._next_query_id(), state="QUEUED", sql=sql, **context)

        with self._lock:
            # Evict oldest if at capacity
            while len(self._statements) >= self._max_statements and self._order:
                oldest = self._order.pop(0)
                self._statements.pop(oldest, None)

            self._statements[stmt.query_id] = stmt
            self._order.append(stmt.query_id)

        return stmt

    def get_statement(self, query_id: str) -> StatementResult | None:
        with self._lock:
            return self._statements.get(query_id)

    def update_statement(self, query_id: str, **changes: Any) -> bool:
        """Apply execution results, unless the statement finished meanwhile.

        Returns:
            True if applied, False if the statement is gone or already done
        """
        with self._lock:
            stmt = self._statements.get(query_id)
            if stmt is None or stmt.is_done:
                return False
            for name, value in changes.items():
                setattr(stmt, name, value)
            return True

    def cancel_statement(self, query_id: str) -> bool:
        """Cancel a statement.

        Returns:
            True if found and canceled, False otherwise
        """
        with self._lock:
            stmt = self._statements.get(query_id)
            if stmt and not stmt.is_done:
                stmt.state = "FAILED"
                stmt.error = dict(USER_CANCELED)
                stmt.rows = None
                return True
            return False

    def list_statements(self, state: str | None = None, limit: int = 100) -> list[StatementResult]:
        """List statements with optional filtering, most recent first."""
        with self._lock:
            statements = list(self._statements.values())

        if state:
            statements = [s for s in statements if s.state == state]

        statements.sort(key=lambda s: s.created_on, reverse=True)

        return statements[:limit]
