"""Type conversion utilities for the fake coordinator.

Maps DuckDB result types to coordinator type signatures and converts DuckDB
result values to the coordinator's JSON representation.
"""

from __future__ import annotations

import re
from typing import Any

from ..types import TypeSignature, encode, parse_signature

# Mapping from DuckDB types to coordinator type signatures
TYPE_MAP = {
    "BOOLEAN": "boolean",
    "BOOL": "boolean",
    "TINYINT": "tinyint",
    "SMALLINT": "smallint",
    "INTEGER": "integer",
    "INT": "integer",
    "BIGINT": "bigint",
    "HUGEINT": "decimal(38,0)",
    "UTINYINT": "smallint",
    "USMALLINT": "integer",
    "UINTEGER": "bigint",
    "UBIGINT": "decimal(20,0)",
    "FLOAT": "real",
    "REAL": "real",
    "DOUBLE": "double",
    "VARCHAR": "varchar",
    "STRING": "varchar",
    "TEXT": "varchar",
    "BLOB": "varbinary",
    "BYTEA": "varbinary",
    "DATE": "date",
    "TIME": "time(6)",
    "TIMESTAMP": "timestamp(6)",
    "DATETIME": "timestamp(6)",
    "TIMESTAMP_S": "timestamp(0)",
    "TIMESTAMP_MS": "timestamp(3)",
    "TIMESTAMP_NS": "timestamp(9)",
    "TIMESTAMP WITH TIME ZONE": "timestamp(6) with time zone",
    "TIMESTAMPTZ": "timestamp(6) with time zone",
    "TIME WITH TIME ZONE": "time(6) with time zone",
    "UUID": "uuid",
    "JSON": "json",
    "NULL": "unknown",
    # Legacy DB-API type codes of older DuckDB releases
    "NUMBER": "double",
}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested in parentheses or quotes."""
    parts, depth, quoted, current = [], 0, False, []
    for char in text:
        if char == '"':
            quoted = not quoted
        elif not quoted and char == "(":
            depth += 1
        elif not quoted and char == ")":
            depth -= 1
        elif not quoted and depth == 0 and char == ",":
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current).strip())
    return parts


def duckdb_type_to_signature(duck_type: Any) -> str:
    """Convert a DuckDB type (or its string form) to a type signature.

    Args:
        duck_type: DuckDB type from a cursor description

    Returns:
        Type signature string, e.g. ``array(map(varchar,integer))``
    """
    text = str(duck_type).strip()
    upper = text.upper()

    array = re.match(r"^(.*)\[\d*\]$", text, re.DOTALL)
    if array:
        return f"array({duckdb_type_to_signature(array.group(1))})"

    if upper.startswith("MAP(") and text.endswith(")"):
        key, value = _split_top_level(text[4:-1])
        return f"map({duckdb_type_to_signature(key)},{duckdb_type_to_signature(value)})"

    if upper.startswith("STRUCT(") and text.endswith(")"):
        fields = []
        for field in _split_top_level(text[7:-1]):
            if field.startswith('"'):
                end = field.index('"', 1)
                name, field_type = field[1:end], field[end + 1 :]
            else:
                name, _, field_type = field.partition(" ")
            if not _IDENTIFIER_RE.match(name):
                name = '"' + name.replace('"', '""') + '"'
            fields.append(f"{name} {duckdb_type_to_signature(field_type)}")
        return f"row({', '.join(fields)})"

    decimal = re.match(r"^(?:DECIMAL|NUMERIC)\((\d+),\s*(\d+)\)$", upper)
    if decimal:
        return f"decimal({decimal.group(1)},{decimal.group(2)})"

    if upper.startswith("VARCHAR("):
        return "varchar"

    return TYPE_MAP.get(upper, "varchar")


def _normalize(signature: TypeSignature, value: Any) -> Any:
    if value is None:
        return None
    kind = signature.kind
    if kind == "sequence":
        (element,) = signature.type_arguments
        return [_normalize(element, item) for item in value]
    if kind == "row":
        items = list(value.values()) if isinstance(value, dict) else list(value)
        return [_normalize(f, item) for f, item in zip(signature.type_arguments, items)]
    if kind == "mapping":
        key_type, value_type = signature.type_arguments
        if (
            isinstance(value, dict)
            and set(value) == {"key", "value"}
            and isinstance(value["key"], list)
            and isinstance(value["value"], list)
        ):
            # Older DuckDB releases return maps as parallel key/value lists.
            value = dict(zip(value["key"], value["value"]))
        return {_normalize(key_type, k): _normalize(value_type, v) for k, v in value.items()}
    if kind == "string" and not isinstance(value, str):
        return str(value)
    return value


def serialize_row(signatures: list[TypeSignature], row: tuple) -> list[Any]:
    """Serialize one DuckDB result row to coordinator JSON values."""
    return [encode(sig, _normalize(sig, value)) for sig, value in zip(signatures, row)]


def serialize_rowset(types: list[str], rows: list[tuple]) -> list[list[Any]]:
    """
    Converts a list of row tuples (from a DuckDB cursor) into a list of list
    structures for the statement response.
    """
    signatures = [parse_signature(t) for t in types]
    return [serialize_row(signatures, row) for row in rows]
