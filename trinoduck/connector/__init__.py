from .connection import Connection, connect
from .cursor import Cursor
from .rowtype import (
    BINARY,
    DATETIME,
    NUMBER,
    ROWID,
    STRING,
    ColumnInfo,
    describe_as_column_info,
    describe_as_description,
)

__all__ = [
    "BINARY",
    "DATETIME",
    "NUMBER",
    "ROWID",
    "STRING",
    "Connection",
    "Cursor",
    "ColumnInfo",
    "connect",
    "describe_as_column_info",
    "describe_as_description",
]
