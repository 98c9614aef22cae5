"""Positional parameter encoding.

Parameters are sent the way the coordinator's prepared statements expect
them: the statement travels in the prepared-statement header and the request
body becomes ``EXECUTE <name> USING <literal>, ...``.
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Sequence
from urllib.parse import quote

from ..errors import NotSupportedError
from ..types import format_zone

PREPARED_STATEMENT_NAME = "_trinoduck"


def format_literal(value: Any) -> str:
    """Render a Python value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "nan()"
        if math.isinf(value):
            return "infinity()" if value > 0 else "-infinity()"
        return f"DOUBLE '{value!r}'"
    if isinstance(value, Decimal):
        return f"DECIMAL '{format(value, 'f')}'"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, (bytes, bytearray)):
        return f"X'{bytes(value).hex()}'"
    if isinstance(value, datetime):
        text = value.strftime("%Y-%m-%d %H:%M:%S.%f")
        if value.tzinfo is not None:
            text += " " + format_zone(value.tzinfo, value)
        return f"TIMESTAMP '{text}'"
    if isinstance(value, date):
        return f"DATE '{value.isoformat()}'"
    if isinstance(value, time):
        text = value.strftime("%H:%M:%S.%f")
        if value.tzinfo is not None:
            text += format_zone(value.tzinfo, datetime.combine(date.today(), value))
        return f"TIME '{text}'"
    if isinstance(value, uuid.UUID):
        return f"UUID '{value}'"
    if isinstance(value, (list, tuple)):
        return "ARRAY[" + ", ".join(format_literal(v) for v in value) + "]"
    if isinstance(value, dict):
        keys = ", ".join(format_literal(k) for k in value)
        values = ", ".join(format_literal(v) for v in value.values())
        return f"MAP(ARRAY[{keys}], ARRAY[{values}])"
    raise NotSupportedError(f"unsupported parameter type: {type(value).__name__}")


def prepare_statement(sql: str, params: Sequence[Any]) -> tuple[str, str]:
    """Build the ``EXECUTE ... USING`` body and the prepared-statement header.

    Returns:
        (body, header value)
    """
    header = f"{PREPARED_STATEMENT_NAME}={quote(sql, safe='')}"
    body = f"EXECUTE {PREPARED_STATEMENT_NAME}"
    if params:
        body += " USING " + ", ".join(format_literal(p) for p in params)
    return body, header
