"""Exception hierarchy for trinoduck.

Follows the PEP 249 (DB-API 2.0) hierarchy so the connector plugs into
generic database tooling, with the protocol error kinds layered on top:

    transport    - network / HTTP status failures
    decode       - malformed or unrecognized type signature / value pairs
    query_failed - the coordinator reported a FAILED query
    unsupported  - a recognized but unsupported session/header operation
    canceled     - the caller's cancellation signal or deadline fired

Every error exposes ``kind`` so callers can branch without matching on
message text.
"""

from __future__ import annotations

import json
from typing import Any


class Warning(Exception):  # noqa: A001 - name mandated by PEP 249
    pass


class Error(Exception):
    kind: str = "error"


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class DataError(DatabaseError):
    pass


class OperationalError(DatabaseError):
    pass


class IntegrityError(DatabaseError):
    pass


class InternalError(DatabaseError):
    pass


class ProgrammingError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


class TransportError(OperationalError):
    """The HTTP exchange with the coordinator failed."""

    kind = "transport"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class QuerySubmissionError(TransportError):
    """The statement could not be submitted; no page was ever decoded."""


class DecodeError(InterfaceError):
    """A value does not match its declared type signature."""

    kind = "decode"

    def __init__(
        self, message: str, signature: str | None = None, fragment: Any = None
    ) -> None:
        if signature is not None:
            message = f"{message} (signature={signature!r}, value={fragment!r})"
        super().__init__(message)
        self.signature = signature
        self.fragment = fragment


class QueryFailedError(DatabaseError):
    """The coordinator reported the query as FAILED."""

    kind = "query_failed"

    def __init__(
        self,
        message: str,
        error_code: int | None = None,
        error_name: str | None = None,
        error_type: str | None = None,
        retriable: bool = False,
        query_id: str | None = None,
        status_code: int = 200,
    ) -> None:
        super().__init__(f"query failed ({status_code}): {json.dumps(message)}")
        self.message = message
        self.error_code = error_code
        self.error_name = error_name
        self.error_type = error_type
        self.retriable = retriable
        self.query_id = query_id


class UnsupportedHeaderError(NotSupportedError):
    """The coordinator asked the client to apply a header it does not support."""

    kind = "unsupported"

    def __init__(self, header: str, value: str | None = None) -> None:
        super().__init__(f"server replied with an unsupported header: {header}")
        self.header = header
        self.value = value


class QueryCanceledError(OperationalError):
    """The query was canceled by the caller."""

    kind = "canceled"
    reason = "canceled"

    def __init__(self, query_id: str | None = None) -> None:
        super().__init__(f"query {self.reason}" + (f": {query_id}" if query_id else ""))
        self.query_id = query_id


class QueryDeadlineExceededError(QueryCanceledError):
    """The query was abandoned because its deadline passed."""

    reason = "deadline exceeded"
