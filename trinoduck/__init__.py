from .connector import (
    BINARY,
    DATETIME,
    NUMBER,
    ROWID,
    STRING,
    Connection,
    Cursor,
    connect,
)
from .errors import (
    DatabaseError,
    DataError,
    DecodeError,
    Error,
    IntegrityError,
    InterfaceError,
    InternalError,
    NotSupportedError,
    OperationalError,
    ProgrammingError,
    QueryCanceledError,
    QueryDeadlineExceededError,
    QueryFailedError,
    QuerySubmissionError,
    TransportError,
    UnsupportedHeaderError,
    Warning,
)
from .protocol import Cancellation, QueryState, TransportRegistry, register_custom_client
from .types import TypedValue, decode, encode, parse_signature

apilevel = "2.0"
threadsafety = 2
paramstyle = "qmark"


# Lazy import for seeding (requires duckdb and pandas)
def __getattr__(name: str):
    if name == "seed_table":
        from .seeding import seed_table
        return seed_table
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "BINARY",
    "Cancellation",
    "Connection",
    "Cursor",
    "DATETIME",
    "DataError",
    "DatabaseError",
    "DecodeError",
    "Error",
    "IntegrityError",
    "InterfaceError",
    "InternalError",
    "NUMBER",
    "NotSupportedError",
    "OperationalError",
    "ProgrammingError",
    "QueryCanceledError",
    "QueryDeadlineExceededError",
    "QueryFailedError",
    "QueryState",
    "QuerySubmissionError",
    "ROWID",
    "STRING",
    "TransportError",
    "TransportRegistry",
    "TypedValue",
    "UnsupportedHeaderError",
    "Warning",
    "apilevel",
    "connect",
    "decode",
    "encode",
    "paramstyle",
    "parse_signature",
    "register_custom_client",
    "seed_table",
    "threadsafety",
]
