"""Statement protocol engine.

Modules:
    page: Result pages and column descriptors
    headers: Session state and header folding
    cancellation: Cancellation signals and the fetch race
    transport: Custom client registry and HTTP request execution
    params: Positional parameter literals
    query: The query lifecycle state machine
"""

from .cancellation import Cancellation, CancellationController
from .headers import SessionHeaderManager, SessionState
from .page import Column, QueryError, QueryState, ResultPage
from .query import Query
from .transport import (
    HttpExecutor,
    TransportRegistry,
    default_registry,
    register_custom_client,
)

__all__ = [
    "Cancellation",
    "CancellationController",
    "Column",
    "HttpExecutor",
    "Query",
    "QueryError",
    "QueryState",
    "ResultPage",
    "SessionHeaderManager",
    "SessionState",
    "TransportRegistry",
    "default_registry",
    "register_custom_client",
]
