"""The query lifecycle state machine.

A :class:`Query` submits one statement and follows the coordinator's chain of
continuation URIs until a terminal page, handing out decoded rows as pages
arrive::

    query = Query(executor, header_manager, controller, base_url).submit("SELECT 1")
    while (row := query.advance()) is not None:
        ...

``advance()`` is the only call that waits on the network, and the only place
a cancellation signal is observed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, NoReturn, Sequence
from urllib.parse import urljoin

import httpx

from ..errors import (
    DecodeError,
    Error,
    InterfaceError,
    QueryCanceledError,
    QueryFailedError,
    QuerySubmissionError,
    TransportError,
    UnsupportedHeaderError,
)
from ..types import TypedValue
from .cancellation import Cancellation, CancellationController
from .headers import SessionHeaderManager
from .page import Column, QueryState, ResultPage
from .params import prepare_statement
from .transport import HttpExecutor

logger = logging.getLogger(__name__)

STATEMENT_PATH = "/v1/statement"


class Query:
    """One submitted statement. Single owner: do not advance from two threads.

    Args:
        executor: Sends requests to the coordinator.
        headers: The connection's session header manager.
        controller: Races fetches against ``cancellation``.
        base_url: Coordinator base URL, e.g. ``http://localhost:8080``.
        cancellation: Optional external cancellation signal or deadline.
    """

    def __init__(
        self,
        executor: HttpExecutor,
        headers: SessionHeaderManager,
        controller: CancellationController,
        base_url: str,
        cancellation: Cancellation | None = None,
    ) -> None:
        self._executor = executor
        self._headers = headers
        self._controller = controller
        self._base_url = base_url
        self.cancellation = cancellation

        self.state = QueryState.CREATED
        self.query_id: str | None = None
        self.next_uri: str | None = None
        self.info_uri: str | None = None
        self.columns: list[Column] | None = None
        self.stats: dict[str, Any] = {}
        self.warnings: list[dict[str, Any]] = []
        self.update_type: str | None = None
        self.update_count: int | None = None

        self._rows: Iterator[list[TypedValue]] | None = None
        self._error: Error | None = None
        self._done = False
        self._decimal_as_double = False

    @property
    def done(self) -> bool:
        return self._done

    def submit(self, sql: str, params: Sequence[Any] | None = None) -> Query:
        """POST the statement and decode the first page.

        Raises:
            QuerySubmissionError: The request never produced a page.
            QueryFailedError: The first page reports a failure.
            UnsupportedHeaderError: The response asks for an unsupported feature.
            QueryCanceledError: The cancellation signal fired first.
        """
        if self.state != QueryState.CREATED:
            raise InterfaceError("query already submitted")

        body, prepared = sql, None
        if params:
            body, prepared = prepare_statement(sql, params)
        request_headers = self._headers.request_headers(prepared)
        # The decode mode is fixed for the lifetime of the query.
        self._decimal_as_double = self._headers.state.decimal_as_double
        url = urljoin(self._base_url, STATEMENT_PATH)

        logger.debug("Submitting statement to %s", url)
        try:
            response = self._controller.fetch(
                lambda: self._executor.request("POST", url, request_headers, body.encode("utf-8")),
                self.cancellation,
                None,
            )
        except QueryCanceledError as e:
            self._terminate(e, QueryState.CANCELED)
        except TransportError as e:
            error = QuerySubmissionError(str(e), status_code=e.status_code, url=e.url)
            error.__cause__ = e
            self._terminate(error, QueryState.FAILED)

        self._accept(response)
        return self

    def advance(self) -> list[TypedValue] | None:
        """Return the next row, or ``None`` once the query is drained.

        Buffered rows are returned without I/O. When the current page is
        exhausted and a continuation URI exists, the next page is fetched.
        Calling again after ``None`` keeps returning ``None``.
        """
        if self.state == QueryState.CREATED:
            raise InterfaceError("query has not been submitted")
        if self._error is not None:
            raise self._error
        if self._done:
            return None

        while True:
            if self._rows is not None:
                try:
                    row = next(self._rows)
                except StopIteration:
                    self._rows = None
                    continue
                except DecodeError as e:
                    self._terminate(e, QueryState.FAILED)
                # A buffered row is dropped once the signal has fired.
                if self._is_cancelled():
                    self._cancel()
                return row

            if self.next_uri is None:
                # Fully delivered: a cancel arriving now is a no-op.
                self._done = True
                if not self.state.is_terminal:
                    self.state = QueryState.FINISHED
                logger.debug("Query %s drained", self.query_id)
                return None

            if self._is_cancelled():
                self._cancel()
            self._fetch_next()

    def describe(self) -> list[Column] | None:
        """Follow continuation URIs until the columns are known or the query ends.

        No row is consumed: pages are only fetched while no columns (and
        therefore no rows) have been received.
        """
        if self._error is not None:
            raise self._error
        while self.columns is None and self.next_uri is not None:
            if self._is_cancelled():
                self._cancel()
            self._fetch_next()
        return self.columns

    def __iter__(self) -> Iterator[list[TypedValue]]:
        while (row := self.advance()) is not None:
            yield row

    def close(self) -> None:
        """Abandon the query without waiting for the coordinator."""
        if self._done or self._error is not None:
            return
        if self.next_uri is not None:
            logger.debug("Abandoning query %s", self.query_id)
            self._controller.abandon(self.next_uri)
            self.next_uri = None
            if not self.state.is_terminal:
                self.state = QueryState.CANCELED
        self._rows = None
        self._done = True

    def _fetch_next(self) -> None:
        uri = self.next_uri
        request_headers = self._headers.request_headers()
        try:
            response = self._controller.fetch(
                lambda: self._executor.request("GET", uri, request_headers),
                self.cancellation,
                uri,
                self.query_id,
            )
        except QueryCanceledError as e:
            self.next_uri = None
            self._terminate(e, QueryState.CANCELED)
        except TransportError as e:
            self._terminate(e, QueryState.FAILED)
        self._accept(response)

    def _accept(self, response: httpx.Response) -> None:
        try:
            body = json.loads(response.content)
        except ValueError as e:
            self._terminate(DecodeError(f"invalid JSON in response: {e}"), QueryState.FAILED)

        try:
            page = ResultPage.from_json(body)
        except DecodeError as e:
            self._terminate(e, QueryState.FAILED)

        self.next_uri = page.next_uri
        try:
            header_query_id = self._headers.apply_response(response.headers)
        except UnsupportedHeaderError as e:
            self._terminate(e, QueryState.FAILED)

        self.query_id = header_query_id or page.query_id or self.query_id
        self.info_uri = page.info_uri or self.info_uri
        self.stats = page.stats or self.stats
        self.warnings = page.warnings or self.warnings
        if page.update_type is not None:
            self.update_type = page.update_type
        if page.update_count is not None:
            self.update_count = page.update_count

        if page.error is not None:
            error = page.error
            self._terminate(
                QueryFailedError(
                    error.display_message,
                    error_code=error.error_code,
                    error_name=error.error_name,
                    error_type=error.error_type,
                    retriable=error.retriable,
                    query_id=self.query_id,
                    status_code=response.status_code,
                ),
                QueryState.FAILED,
            )

        if page.columns is not None:
            if self.columns is None:
                self.columns = page.columns
            elif page.columns != self.columns:
                self._terminate(DecodeError("column descriptors changed between pages"), QueryState.FAILED)
        if page.rows and self.columns is None:
            self._terminate(DecodeError("page carries data without column descriptors"), QueryState.FAILED)

        previous = self.state
        self.state = page.state if page.next_uri is not None else QueryState.FINISHED
        if previous != self.state:
            logger.debug("Query %s: %s -> %s", self.query_id, previous.value, self.state.value)

        self._rows = page.decoded_rows(self.columns or [], self._decimal_as_double) if page.rows else None

    def _is_cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.cancelled

    def _cancel(self) -> NoReturn:
        uri, self.next_uri = self.next_uri, None
        self._controller.abandon(uri)
        self._terminate(self.cancellation.error(self.query_id), QueryState.CANCELED)

    def _terminate(self, error: Error, state: QueryState) -> NoReturn:
        if self.next_uri is not None and state != QueryState.CANCELED:
            self._controller.abandon(self.next_uri)
        self.next_uri = None
        self.state = state
        self._rows = None
        self._error = error
        logger.debug("Query %s terminated (%s): %s", self.query_id, state.value, error)
        raise error
